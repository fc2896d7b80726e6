"""
Shared constants for coinmux components.
"""

SATS_PER_BTC = 100_000_000

# Signature hash types (legacy sighash)
SIGHASH_ALL = 0x01

# Input sequence used for every assembled input (final, no RBF)
SEQUENCE_FINAL = 0xFFFFFFFF

# Version and locktime of assembled CoinJoin transactions
TX_VERSION = 1
TX_LOCKTIME = 0

# Size in bytes of the shared secret sealed for every participant
SECRET_KEY_BYTES = 32
