"""
DubTube - translate and dub YouTube videos.

A pipeline for:
- Extracting audio from YouTube videos
- Transcribing speech with speaker labels
- Translating transcripts (DeepL or OpenAI GPT)
- Cloning voices for dominant speakers and synthesizing speech with ElevenLabs
- Fitting every dubbed segment to its original time slot
- Serving the dubbed track over HTTP with byte-range support
"""

__version__ = "0.1.0"
