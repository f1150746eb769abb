"""Per-call relay between Twilio Media Streams and the realtime session.

One ``CallRelay`` is created for every accepted ``/media-stream`` WebSocket
and owns exactly one ``CallSession`` for the call's lifetime.
"""
