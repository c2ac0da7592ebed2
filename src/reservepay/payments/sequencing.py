"""
Sequencing state threaded through a batch of signing calls.

Both ledgers are single-use tokens: a signing call consumes the token it
is given and returns a successor, which must be fed to the next call.
Reusing a consumed token raises StaleSequencingError instead of producing
a duplicate nonce or a double-spending transaction. The tokens do not
serialize preparation workers; callers still own mutual exclusion per
wallet/currency.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from types import MappingProxyType
from typing import TypeVar

from reservepay.errors import StaleSequencingError
from reservepay.models import OutPoint, SignedTransaction, UnspentOutput

S = TypeVar("S")
T = TypeVar("T")


class _Token:
    def __init__(self) -> None:
        self._consumed = False
        self._lock = threading.Lock()

    @property
    def consumed(self) -> bool:
        return self._consumed

    def _consume(self) -> None:
        with self._lock:
            if self._consumed:
                raise StaleSequencingError(
                    f"{type(self).__name__} was already used for signing; "
                    "fetch fresh sequencing state"
                )
            self._consumed = True


class NonceLedger(_Token):
    """Next nonce per reserve address (account model)."""

    def __init__(self, nonces: Mapping[str, int]):
        super().__init__()
        self._nonces = MappingProxyType({a.lower(): int(n) for a, n in nonces.items()})

    def nonce_for(self, address: str) -> int:
        try:
            return self._nonces[address.lower()]
        except KeyError:
            raise StaleSequencingError(f"No nonce tracked for {address}") from None

    def claim(self, address: str) -> tuple[int, NonceLedger]:
        """
        Take the next nonce for ``address``.

        Returns the nonce and a successor ledger in which that address has
        advanced by exactly one. This ledger is consumed.
        """
        nonce = self.nonce_for(address)
        self._consume()
        successor = dict(self._nonces)
        successor[address.lower()] = nonce + 1
        return nonce, NonceLedger(successor)

    def as_dict(self) -> dict[str, int]:
        return dict(self._nonces)

    def __repr__(self) -> str:
        return f"NonceLedger({self.as_dict()!r}, consumed={self.consumed})"


class SpentOutputs(_Token):
    """Outpoints already claimed by signed but unconfirmed transactions (output model)."""

    def __init__(self, outpoints: Iterable[OutPoint] = ()):
        super().__init__()
        self._outpoints = frozenset((txid, int(vout)) for txid, vout in outpoints)

    def __contains__(self, outpoint: object) -> bool:
        return outpoint in self._outpoints

    def __len__(self) -> int:
        return len(self._outpoints)

    @property
    def outpoints(self) -> frozenset[OutPoint]:
        return self._outpoints

    def consume(self, inputs: Sequence[UnspentOutput]) -> SpentOutputs:
        """
        Mark ``inputs`` as spent and return the successor set.

        Raises:
            StaleSequencingError: If any input is already spent or this set
                was already consumed
        """
        reused = [i.outpoint for i in inputs if i.outpoint in self._outpoints]
        if reused:
            raise StaleSequencingError(f"Outputs already consumed: {reused}")
        self._consume()
        return SpentOutputs(self._outpoints | {i.outpoint for i in inputs})

    def __repr__(self) -> str:
        return f"SpentOutputs({sorted(self._outpoints)!r}, consumed={self.consumed})"


def sign_in_sequence(
    items: Iterable[T], state: S, sign: Callable[[T, S], SignedTransaction]
) -> tuple[list[SignedTransaction], S]:
    """
    Sign ``items`` one after another, feeding each call the state returned
    by the previous one. Returns the signed transactions and final state.
    """
    signed = []
    for item in items:
        tx = sign(item, state)
        signed.append(tx)
        state = tx.sequencing_state
    return signed, state
