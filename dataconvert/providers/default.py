"""Built-in template collection shipped with the package"""
from pathlib import Path
from typing import Dict, Optional

from dataconvert.models import TemplateCollection
from .base import ProviderResult, TemplateCollectionProvider

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "hl7v2"

TEMPLATE_SUFFIXES = (".json.j2", ".j2", ".liquid")


def template_name_from_path(relative_path: str) -> Optional[str]:
    """
    Derive a template name from an archive or package path.

    'Resource/Patient.json.j2' -> 'Resource/Patient'. Returns None for
    files that are not templates.
    """
    name = relative_path.replace("\\", "/").lstrip("./")
    for suffix in TEMPLATE_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return None


def load_template_directory(directory: Path) -> Dict[str, str]:
    """Read every template below a directory into a name -> source layer."""
    layer: Dict[str, str] = {}
    for path in sorted(directory.rglob("*")):
        if not path.is_file():
            continue
        name = template_name_from_path(path.relative_to(directory).as_posix())
        if name:
            layer[name] = path.read_text(encoding="utf-8")
    return layer


class DefaultTemplateCollectionProvider(TemplateCollectionProvider):
    """
    Serves the embedded default template collection.

    Templates are read once at construction; get_collection performs no
    I/O and cannot fail because of external conditions.
    """

    def __init__(self, template_dir: Path = DEFAULT_TEMPLATE_DIR):
        self.template_dir = template_dir
        self._layer = load_template_directory(template_dir)

    async def get_collection(self) -> ProviderResult:
        # Fresh copy per request, collections are request scoped
        return ProviderResult.ok(
            TemplateCollection.from_layer(self._layer),
            source="default"
        )
