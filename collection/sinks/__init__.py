from collection.sinks.response_sink import ResponseSink

__all__ = ["ResponseSink"]
