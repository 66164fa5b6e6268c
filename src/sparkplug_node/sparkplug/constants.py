"""Sparkplug B protocol constants."""

# Topic namespace for Sparkplug B payloads
NAMESPACE = "spBv1.0"

# Framework-owned metric carrying the session number (birth/death sequence)
SESSION_NUMBER_METRIC_NAME = "bdSeq"

# Node control metric a host uses to request a rebirth
REBIRTH_METRIC_NAME = "Node Control/Rebirth"

# Sequence numbers are 0..255
SEQUENCE_MODULUS = 256

# Names callers may never supply themselves
DEFAULT_RESERVED_METRIC_NAMES = (SESSION_NUMBER_METRIC_NAME,)
