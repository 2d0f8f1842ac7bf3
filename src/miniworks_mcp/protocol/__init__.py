"""Protocol layer: checksum, classification, codec, reassembly, and routing."""

from .codec import DecodedMessage, decode, encode
from .commands import Command, MessageType
from .framing import classify
