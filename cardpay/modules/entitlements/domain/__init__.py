from .sink import EntitlementGateway, EntitlementSink, LogOnlyEntitlementSink

__all__ = ["EntitlementGateway", "EntitlementSink", "LogOnlyEntitlementSink"]
