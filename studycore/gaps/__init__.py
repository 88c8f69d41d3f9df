from studycore.gaps.tracker import GapTracker, initial_severity

__all__ = ["GapTracker", "initial_severity"]
