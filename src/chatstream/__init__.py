"""ChatStream: conversational sessions with streamed generative responses."""

__version__ = "0.1.0"
