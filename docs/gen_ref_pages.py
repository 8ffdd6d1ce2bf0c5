"""Build the API reference for PiggyPost at ``mkdocs build`` time.

Run by mkdocs-gen-files. Pages are grouped by architectural layer, bottom
up, so the navigation mirrors the import DAG: models, utils, nips, core,
services. Private modules (leading underscore) and the CLI are left out.
"""

from pathlib import Path

import mkdocs_gen_files


SRC = Path("src") / "piggypost"
REF_DIR = Path("reference")
LAYERS = ("models", "utils", "nips", "core", "services")

nav = mkdocs_gen_files.Nav()

with mkdocs_gen_files.open(REF_DIR / "index.md", "w") as fd:
    fd.write("::: piggypost\n    options:\n      members: false\n")
nav[("piggypost",)] = "index.md"

for layer in LAYERS:
    layer_dir = SRC / layer
    page = Path(layer) / "index.md"
    with mkdocs_gen_files.open(REF_DIR / page, "w") as fd:
        fd.write(f"::: piggypost.{layer}\n    options:\n      members: false\n")
    nav[(layer,)] = page.as_posix()
    mkdocs_gen_files.set_edit_path(REF_DIR / page, layer_dir / "__init__.py")

    for module in sorted(layer_dir.glob("*.py")):
        if module.name.startswith("_"):
            continue
        page = Path(layer) / f"{module.stem}.md"
        with mkdocs_gen_files.open(REF_DIR / page, "w") as fd:
            fd.write(f"::: piggypost.{layer}.{module.stem}\n")
        nav[(layer, module.stem)] = page.as_posix()
        mkdocs_gen_files.set_edit_path(REF_DIR / page, module)

with mkdocs_gen_files.open(REF_DIR / "SUMMARY.md", "w") as nav_file:
    nav_file.writelines(nav.build_literate_nav())
