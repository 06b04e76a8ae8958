from __future__ import annotations

HEADER_FORMAT = "!HH"  # opcode, block/code
OPCODE_FORMAT = "!H"

RRQ = 1
WRQ = 2
DATA = 3
ACK = 4
ERROR = 5

BLOCK_SIZE = 512
MAX_BLOCK = 0xFFFF

DEFAULT_PORT = 69
DEFAULT_TIMEOUT_S = 5.0
DEFAULT_MAX_RETRIES = 3

# Local (non-RFC) error codes reported through TftpError.code
ERR_ALREADY_RUNNING = 0
ERR_TIMEOUT = 100
ERR_FILE_READ = 101
ERR_INVALID_PACKET = 102
ERR_UNSUPPORTED_PACKET = 103
ERR_TRANSPORT = 104
