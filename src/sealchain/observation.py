"""
Observations of an organisation profile and the evidence built from them.

An observation source (typically a hosting-platform API client) reports
which repositories are pinned and whether a profile README exists. Fetching
is the source's business; this module only turns an observation into an
evidence body ready for sealing.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol


STATUS_MATCH = "match"
STATUS_DRIFT = "drift"


@dataclass
class Observation:
    """What the observation source saw."""
    pinned_repo_names: list[str] = field(default_factory=list)
    profile_readme_exists: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "pinnedRepoNames": list(self.pinned_repo_names),
            "profileReadmeExists": self.profile_readme_exists,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Observation":
        """
        Raises:
            ValueError: If the fields have the wrong types
        """
        if not isinstance(data, dict):
            raise ValueError("Observation must be a JSON object")
        pins = data.get("pinnedRepoNames", [])
        readme = data.get("profileReadmeExists", False)
        if not isinstance(pins, list) or not all(isinstance(p, str) for p in pins):
            raise ValueError("pinnedRepoNames must be a list of strings")
        if not isinstance(readme, bool):
            raise ValueError("profileReadmeExists must be a boolean")
        return cls(pinned_repo_names=pins, profile_readme_exists=readme)


class ObservationSource(Protocol):
    """Anything that can observe an organisation's profile state."""

    def observe(self, org: str) -> Observation:
        ...


def build_evidence_body(
    org: str,
    observation: Observation,
    expected_pins: list[str],
    profile_readme_required: bool = False,
) -> dict[str, Any]:
    """
    Compare an observation with expectations and describe the result.

    The body carries no timestamp; callers add one if they want it, before
    sealing.

    Args:
        org: Organisation observed
        observation: What was seen
        expected_pins: Repository names that should be pinned (order ignored)
        profile_readme_required: Whether a missing README counts as drift

    Returns:
        Evidence body with `status` "match" or "drift"
    """
    observed = set(observation.pinned_repo_names)
    expected = set(expected_pins)

    missing = sorted(expected - observed)
    unexpected = sorted(observed - expected)
    readme_ok = observation.profile_readme_exists or not profile_readme_required

    drift = bool(missing or unexpected) or not readme_ok

    return {
        "org": org,
        "observed": observation.to_dict(),
        "expected": {
            "pinnedRepoNames": sorted(expected),
            "profileReadmeRequired": profile_readme_required,
        },
        "findings": {
            "missingPins": missing,
            "unexpectedPins": unexpected,
            "profileReadmeOk": readme_ok,
        },
        "status": STATUS_DRIFT if drift else STATUS_MATCH,
    }
