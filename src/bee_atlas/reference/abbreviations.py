"""Place-name abbreviations enforced on occurrence records."""

from __future__ import annotations

COUNTRIES: dict[str, str] = {
    "United States": "USA",
    "Canada": "CA",
    "CAN": "CA",
}

STATE_PROVINCES: dict[str, str] = {
    # United States
    "Alabama": "AL",
    "Alaska": "AK",
    "Arizona": "AZ",
    "Arkansas": "AR",
    "California": "CA",
    "Colorado": "CO",
    "Connecticut": "CT",
    "Delaware": "DE",
    "Florida": "FL",
    "Georgia": "GA",
    "Hawaii": "HI",
    "Idaho": "ID",
    "Illinois": "IL",
    "Indiana": "IN",
    "Iowa": "IA",
    "Kansas": "KS",
    "Kentucky": "KY",
    "Louisiana": "LA",
    "Maine": "ME",
    "Maryland": "MD",
    "Massachusetts": "MA",
    "Michigan": "MI",
    "Minnesota": "MN",
    "Mississippi": "MS",
    "Missouri": "MO",
    "Montana": "MT",
    "Nebraska": "NE",
    "Nevada": "NV",
    "New Hampshire": "NH",
    "New Jersey": "NJ",
    "New Mexico": "NM",
    "New York": "NY",
    "North Carolina": "NC",
    "North Dakota": "ND",
    "Ohio": "OH",
    "Oklahoma": "OK",
    "Oregon": "OR",
    "Pennsylvania": "PA",
    "Rhode Island": "RI",
    "South Carolina": "SC",
    "South Dakota": "SD",
    "Tennessee": "TN",
    "Texas": "TX",
    "Utah": "UT",
    "Vermont": "VT",
    "Virginia": "VA",
    "Washington": "WA",
    "West Virginia": "WV",
    "Wisconsin": "WI",
    # Canadian provinces and territories
    "Alberta": "AB",
    "British Columbia": "BC",
    "Manitoba": "MB",
    "New Brunswick": "NB",
    "Newfoundland and Labrador": "NL",
    "Nova Scotia": "NS",
    "Ontario": "ON",
    "Prince Edward Island": "PE",
    "Quebec": "QC",
    "Saskatchewan": "SK",
    "Northwest Territories": "NT",
    "Nunavut": "NU",
    "Yukon": "YT",
}

COUNTIES: dict[str, str] = {
    # British Columbia regional districts
    "Alberni-Clayoquot": "ACRD",
    "Bulkley-Nechako": "RDBN",
    "Capital": "CRD",
    "Cariboo": "Cariboo",
    "Central Coast": "CCRD",
    "Central Kootenay": "RDCK",
    "Central Okanagan": "RDCO",
    "Columbia-Shuswap": "CSRD",
    "Comox-Strathcona": "CxSRD",
    "Cowichan Valley": "CwVRD",
    "East Kootenay": "RDEK",
    "Fraser Valley": "FVRD",
    "Fraser-Fort George": "RDFS",
    "Greater Vancouver": "MVRD",
    "Kitimat-Stikine": "RDKS",
    "Kootenay Boundary": "RDKB",
    "Mount Waddington": "RDMW",
    "Nanaimo": "RDN",
    "North Coast": "RDNC",
    "North Okanagan": "RDNO",
    "Northern Rockies": "NRRM",
    "Okanagan-Similkameen": "RDOS",
    "Peace River": "Peace River",
    "Skeena-Queen Charlotte": "NCRD",
    "Squamish-Lillooet": "SLRD",
    "Stikine Region": "Stikine",
    "Strathcona": "SRD",
    "Sunshine Coast": "SCRD",
    "Thompson-Nicola": "TNRD",
    # Geocoder artifacts
    "Doña Ana": "Dona Ana",
    "Lincoln , US, WA": "Lincoln",
    "Franklin , US, WA": "Franklin",
}
