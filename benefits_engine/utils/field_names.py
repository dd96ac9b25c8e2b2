"""
Plain-language names for household profile fields
"""
import re

FIELD_NAME_MAPPINGS = {
    # Demographics
    "age": "your age",
    "isPregnant": "pregnancy status",
    "hasChildren": "whether you have children",
    "hasQualifyingDisability": "qualifying disability status",
    "isBlind": "blindness status",
    "isCitizen": "citizenship status",
    "citizenship": "citizenship status",
    "isLegalResident": "legal residency status",
    "ssn": "Social Security number",

    # Financial
    "householdIncome": "your household's monthly income",
    "householdSize": "your household size",
    "income": "your income",
    "grossIncome": "your gross income",
    "netIncome": "your net income",
    "monthlyIncome": "your monthly income",
    "annualIncome": "your annual income",
    "assets": "your household assets",
    "resources": "your available resources",
    "liquidAssets": "your liquid assets",
    "vehicleValue": "your vehicle value",
    "bankBalance": "your bank account balance",

    # Location
    "state": "your state of residence",
    "stateHasExpanded": "whether your state has expanded coverage",
    "zipCode": "your ZIP code",
    "county": "your county",
    "jurisdiction": "your location",

    # Program-specific
    "hasHealthInsurance": "current health insurance coverage",
    "employmentStatus": "your employment status",
    "isStudent": "student status",
    "isVeteran": "veteran status",
    "isSenior": "senior status (65+)",
    "hasMinorChildren": "whether you have children under 18",

    # Housing
    "housingCosts": "your housing costs",
    "rentAmount": "your monthly rent",
    "mortgageAmount": "your monthly mortgage",
    "isHomeless": "housing situation",

    # Benefits
    "receivesSSI": "Supplemental Security Income (SSI)",
    "receivesSNAP": "SNAP benefits",
    "receivesTANF": "TANF benefits",
    "receivesWIC": "WIC benefits",
    "receivesUnemployment": "unemployment benefits",
}


def format_field_name(field_name: str) -> str:
    """
    Get a human-readable description for a profile field

    Args:
        field_name: Technical field name (camelCase or snake_case)

    Returns:
        Mapped description, or the name rendered in Title Case
    """
    if field_name in FIELD_NAME_MAPPINGS:
        return FIELD_NAME_MAPPINGS[field_name]

    spaced = re.sub(r"([A-Z])", r" \1", field_name).replace("_", " ")
    return " ".join(word[:1].upper() + word[1:] for word in spaced.split())


def has_value(value) -> bool:
    """None, empty string and missing all count as not provided"""
    return value is not None and value != ""
