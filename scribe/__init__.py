"""
scribe: live and offline meeting transcription with chunked summarization.
"""

__version__ = "0.1.0"
