"""Contest proctoring backend: timed coding contest sessions with integrity signals."""
