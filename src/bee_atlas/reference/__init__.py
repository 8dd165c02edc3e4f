"""Static curation reference data.

Lookup tables that don't change with API calls: place-name abbreviations
and the observation field names used by the atlas project on iNaturalist.

Adding a new module:
1. Create ``reference/{name}.py`` with constants
2. Re-export from this ``__init__.py``
"""

from bee_atlas.reference.abbreviations import COUNTIES as COUNTIES
from bee_atlas.reference.abbreviations import COUNTRIES as COUNTRIES
from bee_atlas.reference.abbreviations import STATE_PROVINCES as STATE_PROVINCES
from bee_atlas.reference.inat import OFV_BEES_COLLECTED as OFV_BEES_COLLECTED
from bee_atlas.reference.inat import OFV_SAMPLE_ID as OFV_SAMPLE_ID
