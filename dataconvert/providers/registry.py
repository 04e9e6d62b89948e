"""
Registry-hosted template collections.

Pulls a template image from an OCI distribution registry:

1. Manifest lookup by tag or digest (a pinned manifest digest is verified)
2. Layer blob download, each checked against its sha256 digest and size limit
3. Layer extraction: every gzipped tar layer becomes one template layer,
   in manifest order, so later layers override earlier ones
"""
import hashlib
import io
import logging
import tarfile
from typing import Dict, Iterable, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from dataconvert.models import AccessToken, TemplateCollection
from dataconvert.reference import TemplateReference
from .base import (
    FailureKind,
    ProviderResult,
    TemplateCollectionProvider,
    TemplateCollectionProviderFactory,
)
from .default import template_name_from_path

logger = logging.getLogger(__name__)

MANIFEST_MEDIA_TYPES = ", ".join([
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
])


class LayerValidationError(Exception):
    """Downloaded content failed an integrity or format check."""
    pass


def compute_digest(content: bytes) -> str:
    """OCI content digest of a blob."""
    return "sha256:" + hashlib.sha256(content).hexdigest()


def verify_digest(content: bytes, expected: str) -> None:
    """
    Check blob content against its declared digest.

    Raises:
        LayerValidationError: On unsupported algorithm or mismatch
    """
    if not expected or not expected.startswith("sha256:"):
        raise LayerValidationError(f"Unsupported digest '{expected}'")
    actual = compute_digest(content)
    if actual != expected:
        raise LayerValidationError(f"Digest mismatch: expected {expected}, got {actual}")


def extract_layer(content: bytes, max_size: Optional[int] = None) -> Dict[str, str]:
    """
    Extract templates from a (gzipped) tar layer.

    Args:
        content: Layer blob
        max_size: Limit on the summed size of the files in the archive

    Raises:
        LayerValidationError: If the archive or a template cannot be read,
            or the archive expands beyond max_size
    """
    templates: Dict[str, str] = {}
    expanded = 0
    try:
        with tarfile.open(fileobj=io.BytesIO(content), mode="r:*") as archive:
            for member in archive:
                if not member.isfile():
                    continue
                expanded += member.size
                if max_size is not None and expanded > max_size:
                    raise LayerValidationError(f"Layer expands beyond the {max_size} byte limit")
                name = template_name_from_path(member.name)
                if not name:
                    continue
                handle = archive.extractfile(member)
                if handle is None:
                    continue
                templates[name] = handle.read(member.size).decode("utf-8")
    except (tarfile.TarError, EOFError, OSError, UnicodeDecodeError) as e:
        raise LayerValidationError(f"Unable to read template layer: {e}") from e
    return templates


class RegistryTemplateCollectionProvider(TemplateCollectionProvider):
    """Template collection pulled from a container registry with a bearer token"""

    def __init__(
        self,
        reference: TemplateReference,
        token: AccessToken,
        client: httpx.AsyncClient,
        max_layer_size_bytes: int = 50 * 1024 * 1024,
    ):
        self.reference = reference
        self._token = token
        self._client = client
        self.max_layer_size_bytes = max_layer_size_bytes

    @property
    def base_url(self) -> str:
        return f"https://{self.reference.registry}/v2/{self.reference.repository}"

    async def get_collection(self) -> ProviderResult:
        """
        Download and validate the template image.

        Returns:
            ProviderResult with TemplateCollection data, or a FETCH_FAILED,
            AUTH_FAILED or VALIDATION_FAILED failure
        """
        ref = self.reference

        try:
            response = await self._get(
                f"{self.base_url}/manifests/{ref.manifest_ref}",
                accept=MANIFEST_MEDIA_TYPES
            )
        except httpx.HTTPError as e:
            return ProviderResult.fail(
                FailureKind.FETCH_FAILED,
                f"Unable to reach container registry '{ref.registry}'.",
                cause=e
            )

        failed = self._check_status(response, f"manifest {ref}")
        if failed:
            return failed

        try:
            if ref.digest:
                verify_digest(response.content, ref.digest)
            manifest = response.json()
            layers = manifest.get("layers") if isinstance(manifest, dict) else None
            if not layers or not isinstance(layers, list):
                raise LayerValidationError("Manifest does not list any layers")
        except (LayerValidationError, ValueError) as e:
            return ProviderResult.fail(
                FailureKind.VALIDATION_FAILED,
                f"Template image '{ref}' failed validation: {e}",
                cause=e
            )

        collection_layers = []
        for layer in layers:
            digest = layer.get("digest", "") if isinstance(layer, dict) else ""
            try:
                declared_size = int(layer.get("size", 0))
            except (TypeError, ValueError, AttributeError):
                declared_size = 0
            if declared_size > self.max_layer_size_bytes:
                return ProviderResult.fail(
                    FailureKind.VALIDATION_FAILED,
                    f"Layer {digest} of '{ref}' exceeds the size limit.",
                    digest=digest
                )

            try:
                blob = await self._get(f"{self.base_url}/blobs/{digest}")
            except httpx.HTTPError as e:
                return ProviderResult.fail(
                    FailureKind.FETCH_FAILED,
                    f"Unable to download layer {digest} of '{ref}'.",
                    cause=e,
                    digest=digest
                )

            failed = self._check_status(blob, f"layer {digest}")
            if failed:
                return failed

            try:
                if len(blob.content) > self.max_layer_size_bytes:
                    raise LayerValidationError(f"Layer {digest} exceeds the size limit")
                verify_digest(blob.content, digest)
                collection_layers.append(extract_layer(blob.content, self.max_layer_size_bytes))
            except LayerValidationError as e:
                return ProviderResult.fail(
                    FailureKind.VALIDATION_FAILED,
                    f"Template image '{ref}' failed validation: {e}",
                    cause=e,
                    digest=digest
                )

        collection = TemplateCollection(layers=collection_layers)
        if collection.is_empty:
            return ProviderResult.fail(
                FailureKind.VALIDATION_FAILED,
                f"Template image '{ref}' does not contain any templates."
            )

        logger.info(
            "Fetched template collection %s (%d layers, %d templates)",
            ref, len(collection_layers), len(collection)
        )
        return ProviderResult.ok(collection, reference=str(ref))

    def _check_status(self, response: httpx.Response, what: str) -> Optional[ProviderResult]:
        """Map an HTTP error status to a failed result."""
        status = response.status_code
        if status < 400:
            return None
        if status in (401, 403):
            return ProviderResult.fail(
                FailureKind.AUTH_FAILED,
                f"Access to {what} on '{self.reference.registry}' was denied.",
                status_code=status
            )
        if status == 404:
            return ProviderResult.fail(
                FailureKind.FETCH_FAILED,
                f"The {what} was not found on '{self.reference.registry}'.",
                status_code=status
            )
        return ProviderResult.fail(
            FailureKind.FETCH_FAILED,
            f"Registry '{self.reference.registry}' returned status {status} for {what}.",
            status_code=status
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _get(self, url: str, accept: Optional[str] = None) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._token.value}"}
        if accept:
            headers["Accept"] = accept
        return await self._client.get(url, headers=headers, follow_redirects=True)


class RegistryTemplateProviderFactory(TemplateCollectionProviderFactory):
    """
    Creates registry providers sharing one HTTP client.

    Supported registries are those listed in settings; a reference to any
    other registry yields a provider that reports NOT_CONFIGURED.
    """

    def __init__(
        self,
        registry_servers: Iterable[str],
        timeout: float = 10.0,
        max_layer_size_bytes: int = 50 * 1024 * 1024,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.registry_servers = frozenset(s.strip().lower() for s in registry_servers if s.strip())
        self.timeout = timeout
        self.max_layer_size_bytes = max_layer_size_bytes
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def create_provider(self, reference: TemplateReference, token: AccessToken) -> TemplateCollectionProvider:
        if reference.registry not in self.registry_servers:
            return _UnconfiguredRegistryProvider(reference.registry)
        return RegistryTemplateCollectionProvider(
            reference=reference,
            token=token,
            client=self._get_client(),
            max_layer_size_bytes=self.max_layer_size_bytes
        )


class _UnconfiguredRegistryProvider(TemplateCollectionProvider):
    def __init__(self, registry: str):
        self.registry = registry

    async def get_collection(self) -> ProviderResult:
        return ProviderResult.fail(
            FailureKind.NOT_CONFIGURED,
            f"The container registry '{self.registry}' is not configured."
        )
