from __future__ import annotations
import base64
import sys
from array import array
from typing import List

SAMPLE_RATE = 24000
CHANNELS = 1


def decode_pcm16(audio_base64: str) -> List[float]:
	"""Decode base64 little-endian PCM16 mono into float samples in [-1, 1)."""
	if not audio_base64:
		return []
	raw = base64.b64decode(audio_base64)
	# A trailing odd byte is not a whole sample
	if len(raw) % 2:
		raw = raw[:-1]
	samples = array("h")
	samples.frombytes(raw)
	if sys.byteorder != "little":
		samples.byteswap()
	return [s / 32768.0 for s in samples]
