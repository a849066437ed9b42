"""Artifact digests for circuit finalization.

Final key material (verification key, verifier contract) is digested with
BLAKE3. The beacon is digested with SHA-256, the hash participants use
to check the public randomness applied in the final contribution.

Usage:
    service = ArtifactHashService()
    digest = service.hash_artifact(verification_key_bytes)
"""

from __future__ import annotations

import hashlib
import hmac

import blake3

from ceremony_scheduler.application.services.base import LoggingMixin


class ArtifactHashService(LoggingMixin):
    """Hex digests of final ceremony artifacts.

    Attributes:
        HASH_SIZE: BLAKE3 output size in bytes (32)
    """

    HASH_SIZE: int = 32

    def __init__(self) -> None:
        self._init_logger(component="finalization")

    def hash_artifact(self, content: bytes) -> str:
        """Hash artifact bytes to a hex BLAKE3 digest.

        Raises:
            ValueError: If content is empty.
        """
        if not content:
            raise ValueError("Cannot hash an empty artifact")
        return blake3.blake3(content).hexdigest()

    def verify_artifact(self, content: bytes, expected_hex: str) -> bool:
        """Check artifact bytes against a hex digest in constant time.

        Raises:
            ValueError: If expected_hex is not a 32-byte hex digest.
        """
        if len(expected_hex) != self.HASH_SIZE * 2:
            raise ValueError(
                f"Expected digest must be {self.HASH_SIZE * 2} hex characters, "
                f"got {len(expected_hex)}"
            )
        actual = self.hash_artifact(content)
        if hmac.compare_digest(actual, expected_hex.lower()):
            return True
        self._log.warning(
            "artifact_digest_mismatch",
            expected_hash=expected_hex.lower(),
            actual_hash=actual,
        )
        return False

    def hash_beacon(self, beacon: str) -> str:
        """Hash the finalization beacon to a hex SHA-256 digest.

        Raises:
            ValueError: If the beacon is empty.
        """
        if not beacon:
            raise ValueError("Beacon cannot be empty")
        return hashlib.sha256(beacon.encode("utf-8")).hexdigest()
