"""
Step generators, one module per index.

Importing this package imports every module in it so the generator classes
register themselves; `registry.prepare_generator()` then knows all of them.
"""
from __future__ import annotations

import importlib
import pkgutil

for _module in pkgutil.iter_modules(__path__, __name__ + "."):
    importlib.import_module(_module.name)
