"""Core components of the generation orchestrator.

Architecture Overview
---------------------
1. **Configuration** (config.py): environment-based settings, CREATORGEN_ prefix
2. **Instructions** (rules.py, prompt_composer.py): rule fragments and the
   ordered rule table that assembles one instruction text per request
3. **Inputs and outputs** (assets.py, outputs.py): reference resolution with a
   storage fallback, and persistence of generated images
4. **Providers** (providers/): catalog, registry, the synchronous and queue
   providers, and the gateway that selects between them
5. **Policy** (admission.py, pause_gate.py, recharge.py): credit pre-check and
   settlement, the global pause flag, auto-recharge dispatch
6. **Provenance** (persistence.py): generation records
7. **Orchestration** (orchestrator.py): wires everything above per request

Submodules are imported directly (``from creatorgen.core.admission import
AdmissionController``); only configuration is re-exported here.
"""

from creatorgen.core.config import CreatorGenConfig, config

__all__ = [
    "CreatorGenConfig",
    "config",
]
