from __future__ import annotations

import logging
from pathlib import Path

import hcl2

from azapi_module_kit.errors import TerraformWriteError
from azapi_module_kit.models import GeneratedModule

logger = logging.getLogger(__name__)

FILE_ORDER = ["terraform.tf", "variables.tf", "locals.tf", "main.tf", "outputs.tf"]


class ModuleWriter:
    def __init__(self, validate: bool = True) -> None:
        self.validate = validate

    def write(self, module: GeneratedModule, output_dir: Path) -> list[Path]:
        if self.validate:
            for name, content in module.files.items():
                self.check_syntax(name, content)

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TerraformWriteError(f"Failed to create {output_dir}: {e}") from e

        written: list[Path] = []
        for name in self._ordered(module.files):
            path = output_dir / name
            try:
                path.write_text(module.files[name], encoding="utf-8")
            except OSError as e:
                raise TerraformWriteError(f"Failed to write {path}: {e}") from e
            logger.debug("Wrote %s", path)
            written.append(path)
        return written

    def check_syntax(self, name: str, content: str) -> None:
        try:
            hcl2.loads(content)  # type: ignore[attr-defined]
        except Exception as e:
            raise TerraformWriteError(f"Generated {name} is not valid HCL: {e}") from e

    def _ordered(self, files: dict[str, str]) -> list[str]:
        known = [name for name in FILE_ORDER if name in files]
        return known + sorted(name for name in files if name not in FILE_ORDER)
