"""Error taxonomy for anchoring and verification.

Only InvalidCommitmentFormat is meant to reach callers of `anchor()`; the
provider errors are caught inside the orchestrator and turned into fallback
transitions.
"""


class ProofStampError(Exception):
    pass


class InvalidCommitmentFormat(ProofStampError, ValueError):
    """The content hash is not hex or has the wrong length."""


class CalendarSubmissionFailed(ProofStampError):
    """A single calendar server rejected or did not answer a submission."""

    def __init__(self, server: str, reason: str):
        super().__init__(f'{server}: {reason}')
        self.server = server
        self.reason = reason


class CalendarAttestationUnavailable(ProofStampError):
    """No calendar server accepted the commitment."""


class ChainRpcUnavailable(ProofStampError):
    """The chain RPC endpoint could not be reached or returned an error."""


class ProofStoreWriteFailed(ProofStampError):
    pass


class UnknownProofFormat(ProofStampError):
    pass
