"""
Template collection references.

A reference is either the well-known default sentinel (the collection
shipped with this package) or an OCI image reference of the form
``registry/repository[:tag]`` or ``registry/repository@sha256:<digest>``.
"""
import re
from dataclasses import dataclass
from typing import Optional

DEFAULT_TEMPLATE_REFERENCE = "microsofthealth/fhirconverter:default"
DEFAULT_TAG = "latest"

_REGISTRY = r"(?P<registry>[A-Za-z0-9](?:[A-Za-z0-9\-]*[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9\-]*[A-Za-z0-9])?)+(?::[0-9]+)?)"
_REPOSITORY = r"(?P<repository>[a-z0-9]+(?:[._\-][a-z0-9]+)*(?:/[a-z0-9]+(?:[._\-][a-z0-9]+)*)*)"
_TAG = r"(?::(?P<tag>[A-Za-z0-9_][A-Za-z0-9_.\-]{0,127}))"
_DIGEST = r"(?:@(?P<digest>sha256:[a-f0-9]{64}))"

REFERENCE_PATTERN = re.compile(rf"^{_REGISTRY}/{_REPOSITORY}(?:{_TAG}|{_DIGEST})?$")


class InvalidReferenceError(ValueError):
    """Raised when a template collection reference has an invalid shape."""
    pass


def is_default_reference(reference: str) -> bool:
    """Check whether a reference points at the built-in template collection."""
    return DEFAULT_TEMPLATE_REFERENCE.lower() == (reference or "").lower()


@dataclass(frozen=True)
class TemplateReference:
    """Parsed registry-hosted template collection reference."""
    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    @classmethod
    def parse(cls, reference: str) -> "TemplateReference":
        """
        Parse an image reference.

        Args:
            reference: e.g. 'myacr.azurecr.io/templates:v1'

        Raises:
            InvalidReferenceError: If the reference shape is not valid
        """
        match = REFERENCE_PATTERN.match((reference or "").strip())
        if not match:
            raise InvalidReferenceError(f"The template collection reference '{reference}' is invalid.")

        tag = match.group("tag")
        digest = match.group("digest")
        if not tag and not digest:
            tag = DEFAULT_TAG

        return cls(
            registry=match.group("registry").lower(),
            repository=match.group("repository"),
            tag=tag,
            digest=digest,
        )

    @property
    def manifest_ref(self) -> str:
        """Tag or digest used to address the manifest."""
        return self.digest or self.tag

    def __str__(self) -> str:
        if self.digest:
            return f"{self.registry}/{self.repository}@{self.digest}"
        return f"{self.registry}/{self.repository}:{self.tag}"
