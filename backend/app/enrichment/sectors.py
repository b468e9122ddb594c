from __future__ import annotations

from app.schemas.symbols import CapTier

INDUSTRY_TO_SECTOR: dict[str, str] = {
    # Technology
    "Software—Infrastructure": "IT",
    "Software—Application": "IT",
    "Software - Infrastructure": "IT",
    "Software - Application": "IT",
    "Information Technology Services": "IT",
    "Semiconductors": "IT",
    "Communication Equipment": "IT",
    "Electronic Components": "IT",
    "Computer Hardware": "IT",
    "Internet Content & Information": "IT",
    # Banking & financials
    "Banks—Regional": "Banking",
    "Banks—Diversified": "Banking",
    "Banks - Regional": "Banking",
    "Banks - Diversified": "Banking",
    "Credit Services": "Financials",
    "Asset Management": "Financials",
    "Insurance—Life": "Financials",
    "Insurance—Diversified": "Financials",
    "Insurance - Life": "Financials",
    "Insurance - Diversified": "Financials",
    "Capital Markets": "Financials",
    "Financial Data & Stock Exchanges": "Financials",
    "Financial Services": "Financials",
    # FMCG
    "Household & Personal Products": "FMCG",
    "Packaged Foods": "FMCG",
    "Beverages—Non-Alcoholic": "FMCG",
    "Beverages - Non-Alcoholic": "FMCG",
    "Tobacco": "FMCG",
    "Consumer Packaged Goods": "FMCG",
    "Food Distribution": "FMCG",
    # Pharma
    "Drug Manufacturers—General": "Pharma",
    "Drug Manufacturers - General": "Pharma",
    "Drug Manufacturers—Specialty & Generic": "Pharma",
    "Drug Manufacturers - Specialty & Generic": "Pharma",
    "Biotechnology": "Pharma",
    "Diagnostics & Research": "Pharma",
    "Medical Instruments & Supplies": "Pharma",
    "Healthcare Plans": "Pharma",
    # Energy
    "Oil & Gas Integrated": "Energy",
    "Oil & Gas E&P": "Energy",
    "Oil & Gas Refining & Marketing": "Energy",
    "Oil & Gas Midstream": "Energy",
    "Utilities—Regulated Electric": "Energy",
    "Utilities - Regulated Electric": "Energy",
    "Utilities—Renewable": "Energy",
    "Utilities - Renewable": "Energy",
    # Auto
    "Auto Manufacturers": "Auto",
    "Auto Parts": "Auto",
    "Auto - Manufacturers": "Auto",
    "Auto - Parts": "Auto",
    "Recreational Vehicles": "Auto",
    # Metals
    "Steel": "Metals",
    "Aluminum": "Metals",
    "Copper": "Metals",
    "Other Industrial Metals & Mining": "Metals",
    "Gold": "Metals",
    # Infrastructure
    "Engineering & Construction": "Infrastructure",
    "Infrastructure Operations": "Infrastructure",
    "Building Materials": "Infrastructure",
    "Airports & Air Services": "Infrastructure",
    "Railroads": "Infrastructure",
    # Telecom
    "Telecom Services": "Telecom",
    "Telecommunication Services": "Telecom",
    # Realty
    "Real Estate—Development": "Realty",
    "Real Estate - Development": "Realty",
    "Real Estate Services": "Realty",
    "REIT—Diversified": "Realty",
    "REIT - Diversified": "Realty",
    # Chemicals
    "Specialty Chemicals": "Chemicals",
    "Agricultural Inputs": "Chemicals",
    "Chemicals": "Chemicals",
    "Conglomerates": "Conglomerates",
}

PROVIDER_SECTOR_MAP: dict[str, str] = {
    "Technology": "IT",
    "Financial Services": "Financials",
    "Healthcare": "Pharma",
    "Consumer Defensive": "FMCG",
    "Consumer Cyclical": "Auto",
    "Energy": "Energy",
    "Basic Materials": "Metals",
    "Industrials": "Infrastructure",
    "Communication Services": "Telecom",
    "Real Estate": "Realty",
    "Utilities": "Energy",
}

SECTORS: list[str] = sorted(set(INDUSTRY_TO_SECTOR.values()) | set(PROVIDER_SECTOR_MAP.values()))


def sector_from_industry(industry: str | None) -> str | None:
    if not industry:
        return None
    return INDUSTRY_TO_SECTOR.get(industry.strip())


def sector_from_provider(sector: str | None) -> str | None:
    """Map the provider's coarse sector; unmapped names pass through unchanged."""
    if not sector or not sector.strip():
        return None
    return PROVIDER_SECTOR_MAP.get(sector.strip(), sector.strip())


def tier_from_market_cap(
    market_cap: float | None, large_threshold: float, mid_threshold: float
) -> CapTier | None:
    if market_cap is None or market_cap <= 0:
        return None
    if market_cap >= large_threshold:
        return CapTier.LARGE
    if market_cap >= mid_threshold:
        return CapTier.MID
    return CapTier.SMALL
