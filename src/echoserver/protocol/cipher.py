"""
=============================================================================
KEYSTREAM CIPHER
=============================================================================

Every Echo payload travels XORed with a keystream derived from the session
credentials and the message's sequence number.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       KEYSTREAM DERIVATION                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   sequence (u8)    sum(username[32]) % 256   sum(password[32]) % 256 │
    │        │                    │                          │             │
    │        ▼                    ▼                          ▼             │
    │   ┌─────────┬──────────────────────┬──────────────────────┐          │
    │   │ << 16   │        << 8          │          << 0        │          │
    │   └─────────┴──────────────────────┴──────────────────────┘          │
    │                         initial key (u32)                            │
    │                               │                                      │
    │                               ▼                                      │
    │   key = ((key * 1103515245 + 12345) mod 2**32) % 0x7FFFFFFF         │
    │                               │  (once per payload byte)             │
    │                               ▼                                      │
    │                 cipher[i] = plain[i] ^ (key % 256)                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

WORKED EXAMPLE
──────────────

    username = "testuser" (zero padded to 32 bytes)  → checksum 0x7F
    password = "testpass" (zero padded to 32 bytes)  → checksum 0x77
    sequence = 87                                     → 0x57

    initial key = 0x57_7F_77 = 0x577F77
    first keystream bytes: E5 BA 6B C9 ...
    "test" → 91 DF 18 BD

THIS IS NOT CRYPTOGRAPHY
────────────────────────

The keystream is a linear congruential generator seeded from 24 bits of
input. It hides payloads from a casual packet capture and nothing more. It
provides no confidentiality, no integrity and no authentication.

=============================================================================
"""

from typing import Union

from .messages import Credential


# LCG parameters (the classic ANSI C rand() constants)
MULTIPLIER = 1103515245
INCREMENT = 12345
MODULUS = 0x7FFFFFFF

_U32_MASK = 0xFFFFFFFF

CredentialLike = Union[Credential, bytes, bytearray]


def checksum(buffer: CredentialLike) -> int:
    """
    Byte-wise sum of a credential buffer, truncated to 8 bits.

    The sum runs over the ENTIRE fixed-size field, padding included.
    For zero padding this makes no difference, but a peer that sends
    garbage after the terminator gets a different key than one that
    sends zeros.
    """
    if isinstance(buffer, Credential):
        buffer = buffer.raw
    return sum(buffer) & 0xFF


def derive_initial_key(sequence: int, username: CredentialLike, password: CredentialLike) -> int:
    """
    Derive the initial key for one Echo message.

    Args:
        sequence: Message sequence number (only the low 8 bits are used,
                  so wrapped sequence numbers derive the same key).
        username: Username credential (Credential or raw 32-byte field).
        password: Password credential (Credential or raw 32-byte field).

    Returns:
        The 32-bit initial key.
    """
    return ((sequence & 0xFF) << 16) | (checksum(username) << 8) | checksum(password)


def next_key(key: int) -> int:
    """
    Advance the key by one step.

    The multiply-add wraps at 32 bits BEFORE the modulo is applied,
    exactly like unsigned 32-bit arithmetic does. Doing the modulo on the
    unbounded product gives a different (wrong) keystream.
    """
    return ((key * MULTIPLIER + INCREMENT) & _U32_MASK) % MODULUS


def keystream(initial_key: int, length: int) -> bytes:
    """Return the first `length` keystream bytes for `initial_key`."""
    out = bytearray(length)
    key = initial_key
    for i in range(length):
        key = next_key(key)
        out[i] = key & 0xFF
    return bytes(out)


def apply(buffer: bytes, initial_key: int) -> bytes:
    """
    XOR `buffer` with the keystream for `initial_key`.

    Encryption and decryption are the same operation:

        apply(apply(data, key), key) == data

    Args:
        buffer: Payload bytes (never header or length fields).
        initial_key: Key from derive_initial_key().

    Returns:
        The transformed payload, same length as the input.
    """
    stream = keystream(initial_key, len(buffer))
    return bytes(a ^ b for a, b in zip(buffer, stream))


def apply_for(buffer: bytes, sequence: int, username: CredentialLike, password: CredentialLike) -> bytes:
    """Derive the key for (sequence, username, password) and apply it."""
    return apply(buffer, derive_initial_key(sequence, username, password))
