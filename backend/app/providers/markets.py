from __future__ import annotations

MARKET_SUFFIXES: dict[str, str] = {
    "NYSE": "",
    "NASDAQ": "",
    "TSX": ".TO",
    "LSE": ".L",
    "XETRA": ".DE",
    "EURONEXT": ".PA",
    "SIX": ".SW",
    "NSE": ".NS",
    "BSE": ".BO",
    "TSE": ".T",
    "HKEX": ".HK",
    "SSE": ".SS",
    "SZSE": ".SZ",
    "KRX": ".KS",
    "ASX": ".AX",
    "SGX": ".SI",
    "B3": ".SA",
    "JSE": ".JO",
    "MOEX": ".ME",
    "TADAWUL": ".SR",
}


def provider_symbol(ticker: str, market: str) -> str:
    normalized = ticker.strip().upper()
    suffix = MARKET_SUFFIXES.get(market.strip().upper(), "")
    if suffix and normalized.endswith(suffix):
        return normalized
    return f"{normalized}{suffix}"
