"""StackMemory: dynamically growable simulated stack for ARMLite-CPU.

The simulated stack is a contiguous byte buffer addressed by two inclusive
bounds, stack_top (lowest byte) and stack_bot (highest byte). Both bounds are
kept on 8-byte word boundaries and the buffer always holds
stack_bot - stack_top + 1 bytes.

Growth is lazy: read() and write() call ensure_covers() for every byte they
touch, so no caller has to grow the stack before accessing it. Every growth
reallocates and copies the whole buffer. Growth stops at max_size bytes;
accesses beyond that, or past the end of the 64-bit address space, raise
StackBoundsError.
"""

import logging
from typing import Iterator, Tuple

from .errors import StackBoundsError
from .instruction import MASK64, WORD_SIZE_BYTES

logger = logging.getLogger(__name__)

DEFAULT_MAX_STACK_SIZE = 1 << 20


def align_down(address: int) -> int:
    """Round an address down to a word boundary."""
    return address - (address % WORD_SIZE_BYTES)


def align_up_strict(address: int) -> int:
    """Round an address up to the next word boundary strictly above it.

    An address that is already aligned still advances by a full word.
    """
    return address + (WORD_SIZE_BYTES - address % WORD_SIZE_BYTES)


class StackMemory:
    """Byte buffer plus inclusive address bounds.

    Attributes:
        stack_top: Lowest addressable byte (word aligned)
        stack_bot: Highest addressable byte (word aligned)
        max_size: Largest buffer, in bytes, that growth may produce
    """

    def __init__(self, sp: int, max_size: int = DEFAULT_MAX_STACK_SIZE):
        """Create a stack covering one word starting at sp.

        Args:
            sp: Initial stack pointer (rounded down to a word boundary)
            max_size: Growth limit in bytes
        """
        self.stack_top = align_down(sp)
        self.stack_bot = self.stack_top + WORD_SIZE_BYTES
        self.max_size = max_size
        self._buffer = bytearray(self.stack_bot - self.stack_top + 1)

    def __len__(self) -> int:
        return len(self._buffer)

    def covers(self, address: int) -> bool:
        return self.stack_top <= address <= self.stack_bot

    def ensure_covers(self, address: int) -> bool:
        """Grow the buffer so that address lies within [stack_top, stack_bot].

        Args:
            address: Simulated address that must become addressable

        Returns:
            True if the buffer was reallocated, False if already covered

        Raises:
            StackBoundsError: If address is not a 64-bit address or the
                grown buffer would exceed max_size
        """
        if not 0 <= address <= MASK64:
            raise StackBoundsError(address, 1, self.stack_top, self.stack_bot)

        if address < self.stack_top:
            new_top = align_down(address)
            self._check_size(address, self.stack_bot - new_top + 1)
            prefix = bytearray(self.stack_top - new_top)
            logger.debug(
                "Growing stack up: top 0x%X -> 0x%X", self.stack_top, new_top
            )
            self._buffer = prefix + self._buffer
            self.stack_top = new_top
            return True

        if address > self.stack_bot:
            new_bot = align_up_strict(address)
            self._check_size(address, new_bot - self.stack_top + 1)
            suffix = bytearray(new_bot - self.stack_bot)
            logger.debug(
                "Growing stack down: bot 0x%X -> 0x%X", self.stack_bot, new_bot
            )
            self._buffer = self._buffer + suffix
            self.stack_bot = new_bot
            return True

        return False

    def _check_size(self, address: int, new_size: int) -> None:
        if new_size > self.max_size:
            logger.warning(
                "Stack growth to 0x%X needs %d bytes (limit %d)",
                address, new_size, self.max_size
            )
            raise StackBoundsError(address, 1, self.stack_top, self.stack_bot)

    def translate(self, address: int, size: int = 1) -> int:
        """Translate a simulated address to an offset into the buffer.

        Args:
            address: First simulated byte of the access
            size: Number of bytes accessed

        Returns:
            Buffer offset of address

        Raises:
            StackBoundsError: If any byte of the access is not covered
        """
        if size < 1 or not (self.covers(address) and self.covers(address + size - 1)):
            raise StackBoundsError(address, size, self.stack_top, self.stack_bot)
        return address - self.stack_top

    def _reserve(self, address: int, size: int) -> int:
        """Grow to cover an access and return its buffer offset."""
        if size < 1 or address < 0 or address + size - 1 > MASK64:
            raise StackBoundsError(address, size, self.stack_top, self.stack_bot)
        self.ensure_covers(address)
        self.ensure_covers(address + size - 1)
        return self.translate(address, size)

    def read_bytes(self, address: int, size: int) -> bytes:
        offset = self._reserve(address, size)
        return bytes(self._buffer[offset:offset + size])

    def read(self, address: int, size: int) -> int:
        """Read a little-endian unsigned value of size bytes."""
        return int.from_bytes(self.read_bytes(address, size), "little")

    def write(self, address: int, value: int, size: int) -> None:
        """Write the low size bytes of value, little-endian, at address."""
        offset = self._reserve(address, size)
        value &= (1 << (8 * size)) - 1
        self._buffer[offset:offset + size] = value.to_bytes(size, "little")

    def rows(self) -> Iterator[Tuple[int, bytes]]:
        """Yield (address, bytes) for each word-aligned row of the buffer.

        Rows run from stack_top through the row that starts at stack_bot.
        That last row holds the single byte at stack_bot.
        """
        for offset in range(0, len(self._buffer), WORD_SIZE_BYTES):
            yield self.stack_top + offset, bytes(self._buffer[offset:offset + WORD_SIZE_BYTES])

    def snapshot(self) -> bytes:
        return bytes(self._buffer)
