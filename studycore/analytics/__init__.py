from studycore.analytics.reader import AnalyticsReader, PerformanceMetrics, SessionAnalytics

__all__ = ["AnalyticsReader", "PerformanceMetrics", "SessionAnalytics"]
