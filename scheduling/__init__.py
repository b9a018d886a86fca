"""SM-2 spaced repetition scheduling for Django projects."""

__version__ = '0.1.0'
