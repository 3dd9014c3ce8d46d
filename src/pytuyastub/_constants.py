"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# 55AA frame layout (all header fields are big-endian uint32)
# ------------------------------------------------------------------

PREFIX = 0x000055AA
SUFFIX = 0x0000AA55
PREFIX_BYTES = PREFIX.to_bytes(4, "big")
SUFFIX_BYTES = SUFFIX.to_bytes(4, "big")

HEADER_FMT = ">4I"  # prefix, seqno, command, length
HEADER_SIZE = 16
RETCODE_SIZE = 4
CRC_SIZE = 4
SUFFIX_SIZE = 4
TRAILER_SIZE = CRC_SIZE + SUFFIX_SIZE

#: Upper bound for the ``length`` header field.  Anything larger is treated
#: as a corrupt header instead of being buffered.
MAX_PAYLOAD_LENGTH = 0x10000

#: Sequence number used by unsolicited frames (status push, discovery).
NO_SEQUENCE = 0

# ------------------------------------------------------------------
# Protocol 3.1 payload envelope
# ------------------------------------------------------------------

PROTOCOL_VERSION_31 = "3.1"
SUPPORTED_PROTOCOL_VERSIONS: frozenset[str] = frozenset({PROTOCOL_VERSION_31})
VERSION_31_BYTES = PROTOCOL_VERSION_31.encode("ascii")
SIGNATURE_SIZE = 16
LOCAL_KEY_LENGTH = 16
AES_BLOCK_SIZE = 16

#: Control requests older/newer than this (seconds) are refused.
MAX_TIMESTAMP_SKEW_SECONDS = 10.0

# ------------------------------------------------------------------
# Network defaults
# ------------------------------------------------------------------

DEFAULT_IP = "127.0.0.1"
DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_PORT = 6668
DEFAULT_BROADCAST_PORT = 6666
DEFAULT_BROADCAST_INTERVAL = 5.0
DEFAULT_BROADCAST_ADDRESS = "255.255.255.255"
READ_CHUNK_SIZE = 4096
