"""
Curated alias table for entity canonicalisation.

Static data: loaded once into an immutable mapping and never mutated at
runtime. Order matters for containment matching (first hit wins), so more
specific aliases sit above the shorter ones they contain.
"""
from __future__ import annotations

import re
from types import MappingProxyType
from typing import Mapping, Tuple

ALIAS_ENTRIES: Tuple[Tuple[str, str], ...] = (
    # Audit / accounting
    ("ernst & young", "Ernst & Young"),
    ("ernst and young", "Ernst & Young"),
    ("ey", "Ernst & Young"),
    ("pricewaterhousecoopers", "PwC"),
    ("pwc", "PwC"),
    ("deloitte touche tohmatsu", "Deloitte"),
    ("deloitte", "Deloitte"),
    ("kpmg", "KPMG"),
    ("bdo audit", "BDO"),
    ("bdo", "BDO"),
    ("grant thornton", "Grant Thornton"),
    ("rsm", "RSM"),
    ("pitcher partners", "Pitcher Partners"),
    ("hall chadwick", "Hall Chadwick"),
    ("william buck", "William Buck"),
    ("hlb mann judd", "HLB Mann Judd"),
    # Custodians / nominees (above the bank names they contain)
    ("hsbc custody nominees", "HSBC Custody Nominees"),
    ("j p morgan nominees", "J.P. Morgan Nominees"),
    ("jp morgan nominees", "J.P. Morgan Nominees"),
    ("citicorp nominees", "Citicorp Nominees"),
    ("bnp paribas nominees", "BNP Paribas Nominees"),
    ("national nominees", "National Nominees"),
    # Asset managers / institutional holders
    ("blackrock", "BlackRock"),
    ("state street", "State Street"),
    ("the vanguard group", "Vanguard"),
    ("vanguard", "Vanguard"),
    ("dimensional fund advisors", "Dimensional Fund Advisors"),
    ("dimensional", "Dimensional Fund Advisors"),
    ("australiansuper", "AustralianSuper"),
    ("australian super", "AustralianSuper"),
    ("washington h soul pattinson", "Soul Pattinson"),
    ("soul pattinson", "Soul Pattinson"),
    ("sprott asset management", "Sprott"),
    ("sprott", "Sprott"),
    ("perpetual", "Perpetual"),
    ("regal funds management", "Regal Funds"),
    ("regal funds", "Regal Funds"),
    ("fidelity", "Fidelity"),
    # Investment banks / brokers
    ("macquarie capital", "Macquarie"),
    ("macquarie bank", "Macquarie"),
    ("macquarie", "Macquarie"),
    ("j p morgan", "J.P. Morgan"),
    ("jp morgan", "J.P. Morgan"),
    ("jpmorgan", "J.P. Morgan"),
    ("goldman sachs", "Goldman Sachs"),
    ("morgan stanley", "Morgan Stanley"),
    ("ubs", "UBS"),
    ("canaccord genuity", "Canaccord Genuity"),
    ("canaccord", "Canaccord Genuity"),
    ("bell potter", "Bell Potter"),
    ("euroz hartleys", "Euroz Hartleys"),
    ("argonaut", "Argonaut"),
    ("ord minnett", "Ord Minnett"),
    ("morgans financial", "Morgans"),
    ("morgans", "Morgans"),
    ("wilsons advisory", "Wilsons"),
    ("jarden", "Jarden"),
    ("moelis", "Moelis"),
    ("gresham", "Gresham"),
    ("lazard", "Lazard"),
    # Banks / lenders
    ("commonwealth bank of australia", "Commonwealth Bank"),
    ("commonwealth bank", "Commonwealth Bank"),
    ("cba", "Commonwealth Bank"),
    ("westpac banking corporation", "Westpac"),
    ("westpac", "Westpac"),
    ("australia and new zealand banking", "ANZ"),
    ("anz", "ANZ"),
    ("national australia bank", "NAB"),
    ("nab", "NAB"),
    # Share registries
    ("computershare investor services", "Computershare"),
    ("computershare", "Computershare"),
    ("link market services", "Link Market Services"),
    ("mufg corporate markets", "MUFG Corporate Markets"),
    ("automic", "Automic"),
    ("boardroom pty", "Boardroom"),
    # Law firms
    ("herbert smith freehills", "Herbert Smith Freehills"),
    ("king & wood mallesons", "King & Wood Mallesons"),
    ("king and wood mallesons", "King & Wood Mallesons"),
    ("gilbert + tobin", "Gilbert + Tobin"),
    ("gilbert & tobin", "Gilbert + Tobin"),
    ("gilbert and tobin", "Gilbert + Tobin"),
    ("minter ellison", "MinterEllison"),
    ("minterellison", "MinterEllison"),
    ("corrs chambers westgarth", "Corrs Chambers Westgarth"),
    ("clayton utz", "Clayton Utz"),
    ("allens linklaters", "Allens"),
    ("allens", "Allens"),
    ("ashurst", "Ashurst"),
    ("hamilton locke", "Hamilton Locke"),
    # Government / regulators (acronyms)
    ("australian competition and consumer commission", "ACCC"),
    ("accc", "ACCC"),
    ("australian securities and investments commission", "ASIC"),
    ("asic", "ASIC"),
    ("australian securities exchange", "ASX"),
    ("asx limited", "ASX"),
    ("asx", "ASX"),
    ("australian taxation office", "ATO"),
    ("ato", "ATO"),
    ("australian prudential regulation authority", "APRA"),
    ("apra", "APRA"),
    ("foreign investment review board", "FIRB"),
    ("firb", "FIRB"),
    ("australian transaction reports and analysis centre", "AUSTRAC"),
    ("austrac", "AUSTRAC"),
    ("therapeutic goods administration", "TGA"),
    ("tga", "TGA"),
    ("takeovers panel", "Takeovers Panel"),
)

_FOLD_RE = re.compile(r"[^\w&+\s]")


def alias_key(name: str) -> str:
    """Lower-case, fold punctuation to spaces, collapse whitespace."""
    return " ".join(_FOLD_RE.sub(" ", name.lower()).split())


def _build_alias_map() -> Mapping[str, str]:
    table: dict[str, str] = {}
    for alias, canonical in ALIAS_ENTRIES:
        table.setdefault(alias_key(alias), canonical)
    # Every canonical form resolves to itself (fixed point).
    for _, canonical in ALIAS_ENTRIES:
        table.setdefault(alias_key(canonical), canonical)
    return MappingProxyType(table)


ALIASES: Mapping[str, str] = _build_alias_map()

# Containment scan order: the curated order, keys as normalised above.
ALIAS_SCAN_ORDER: Tuple[Tuple[str, str], ...] = tuple(
    (alias_key(alias), canonical) for alias, canonical in ALIAS_ENTRIES
)
