"""
DRMD Certificate Core
=====================
Digitizes Reference Material Certificates into the Digital Reference
Material Document (DRMD) XML format.

Architecture:
    - Unit Converter: Normalizes free-text units into D-SI notation
    - Document Model: Canonical in-memory certificate tree
    - Extraction Normalizer: Upgrades loose vision-model output into the model
    - XML Codec: Encodes/decodes the model to/from namespaced DRMD XML
    - Validator: Produces the error/warning report gating export

Version: 1.0.0
"""

__version__ = "1.0.0"
