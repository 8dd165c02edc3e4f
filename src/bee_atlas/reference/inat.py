"""iNaturalist observation conventions used by the atlas project."""

from __future__ import annotations

# Observation field values (OFVs) volunteers fill in on each observation
OFV_SAMPLE_ID = "sampleId"
OFV_BEES_COLLECTED = "numberOfSpecimens"

# Fields kept from raw observation payloads
OBSERVATION_FIELDS = (
    "uuid",
    "id",
    "positional_accuracy",
    "observed_on",
    "place_ids",
    "taxon",
    "ofvs",
    "uri",
    "geojson",
    "user",
    "place_guess",
)

# Place admin levels resolved to country / state / county
ADMIN_LEVEL_COUNTRY = "0"
ADMIN_LEVEL_STATE = "10"
ADMIN_LEVEL_COUNTY = "20"

# Taxon ranks cached for plant ancestry lookups
SAVED_TAXON_RANKS = ("phylum", "order", "family", "genus", "species")
SPECIES_OR_LOWER_RANKS = ("species", "hybrid", "subspecies", "variety", "form")

DEFAULT_SAMPLING_PROTOCOL = "aerial net"
FLOWER_RELATIONSHIP = "visits flowers of"
