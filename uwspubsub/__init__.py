"""Topic-tree publish/subscribe, corkable socket writes and HTTP/1.1 response framing."""

__version__ = "0.1.0"
__all__ = ["topictree", "asyncsocket", "httpresponse"]