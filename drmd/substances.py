"""
Substance Identifiers
=====================
Name/symbol -> CAS Registry Number lookup for chemical elements.

Used by the XML encoder to enrich measured quantities whose row name is an
element (e.g. "Iron", "Fe") with a CAS identifier block. A miss has no effect
on the exported document.
"""

from __future__ import annotations

from typing import Optional

from .models import Identifier

CAS_SCHEME = "CAS"
CAS_LINK_TEMPLATE = "https://commonchemistry.cas.org/detail?cas_rn={cas}"

# (name, symbol, CAS registry number)
ELEMENTS: tuple[tuple[str, str, str], ...] = (
    ("hydrogen", "H", "1333-74-0"),
    ("helium", "He", "7440-59-7"),
    ("lithium", "Li", "7439-93-2"),
    ("beryllium", "Be", "7440-41-7"),
    ("boron", "B", "7440-42-8"),
    ("carbon", "C", "7440-44-0"),
    ("nitrogen", "N", "7727-37-9"),
    ("oxygen", "O", "7782-44-7"),
    ("fluorine", "F", "7782-41-4"),
    ("neon", "Ne", "7440-01-9"),
    ("sodium", "Na", "7440-23-5"),
    ("magnesium", "Mg", "7439-95-4"),
    ("aluminium", "Al", "7429-90-5"),
    ("silicon", "Si", "7440-21-3"),
    ("phosphorus", "P", "7723-14-0"),
    ("sulfur", "S", "7704-34-9"),
    ("chlorine", "Cl", "7782-50-5"),
    ("argon", "Ar", "7440-37-1"),
    ("potassium", "K", "7440-09-7"),
    ("calcium", "Ca", "7440-70-2"),
    ("scandium", "Sc", "7440-20-2"),
    ("titanium", "Ti", "7440-32-6"),
    ("vanadium", "V", "7440-62-2"),
    ("chromium", "Cr", "7440-47-3"),
    ("manganese", "Mn", "7439-96-5"),
    ("iron", "Fe", "7439-89-6"),
    ("cobalt", "Co", "7440-48-4"),
    ("nickel", "Ni", "7440-02-0"),
    ("copper", "Cu", "7440-50-8"),
    ("zinc", "Zn", "7440-66-6"),
    ("gallium", "Ga", "7440-55-3"),
    ("germanium", "Ge", "7440-56-4"),
    ("arsenic", "As", "7440-38-2"),
    ("selenium", "Se", "7782-49-2"),
    ("bromine", "Br", "7726-95-6"),
    ("krypton", "Kr", "7439-90-9"),
    ("rubidium", "Rb", "7440-17-7"),
    ("strontium", "Sr", "7440-24-6"),
    ("yttrium", "Y", "7440-65-5"),
    ("zirconium", "Zr", "7440-67-7"),
    ("niobium", "Nb", "7440-03-1"),
    ("molybdenum", "Mo", "7439-98-7"),
    ("technetium", "Tc", "7440-26-8"),
    ("ruthenium", "Ru", "7440-18-8"),
    ("rhodium", "Rh", "7440-16-6"),
    ("palladium", "Pd", "7440-05-3"),
    ("silver", "Ag", "7440-22-4"),
    ("cadmium", "Cd", "7440-43-9"),
    ("indium", "In", "7440-74-6"),
    ("tin", "Sn", "7440-31-5"),
    ("antimony", "Sb", "7440-36-0"),
    ("tellurium", "Te", "13494-80-9"),
    ("iodine", "I", "7553-56-2"),
    ("xenon", "Xe", "7440-63-3"),
    ("cesium", "Cs", "7440-46-2"),
    ("barium", "Ba", "7440-39-3"),
    ("lanthanum", "La", "7439-91-0"),
    ("cerium", "Ce", "7440-45-1"),
    ("praseodymium", "Pr", "7440-10-0"),
    ("neodymium", "Nd", "7440-00-8"),
    ("promethium", "Pm", "7440-12-2"),
    ("samarium", "Sm", "7440-19-9"),
    ("europium", "Eu", "7440-53-1"),
    ("gadolinium", "Gd", "7440-54-2"),
    ("terbium", "Tb", "7440-27-9"),
    ("dysprosium", "Dy", "7429-91-6"),
    ("holmium", "Ho", "7440-60-0"),
    ("erbium", "Er", "7440-52-0"),
    ("thulium", "Tm", "7440-30-4"),
    ("ytterbium", "Yb", "7440-64-4"),
    ("lutetium", "Lu", "7439-94-3"),
    ("hafnium", "Hf", "7440-58-6"),
    ("tantalum", "Ta", "7440-25-7"),
    ("tungsten", "W", "7440-33-7"),
    ("rhenium", "Re", "7440-15-5"),
    ("osmium", "Os", "7440-04-2"),
    ("iridium", "Ir", "7439-88-5"),
    ("platinum", "Pt", "7440-06-4"),
    ("gold", "Au", "7440-57-5"),
    ("mercury", "Hg", "7439-97-6"),
    ("thallium", "Tl", "7440-28-0"),
    ("lead", "Pb", "7439-92-1"),
    ("bismuth", "Bi", "7440-69-9"),
    ("polonium", "Po", "7440-08-6"),
    ("astatine", "At", "7440-68-8"),
    ("radon", "Rn", "10043-92-2"),
    ("francium", "Fr", "7440-73-5"),
    ("radium", "Ra", "7440-14-4"),
    ("actinium", "Ac", "7440-34-8"),
    ("thorium", "Th", "7440-29-1"),
    ("protactinium", "Pa", "7440-13-3"),
    ("uranium", "U", "7440-61-1"),
    ("neptunium", "Np", "7439-99-8"),
    ("plutonium", "Pu", "7440-07-5"),
    ("americium", "Am", "7440-35-9"),
    ("curium", "Cm", "7440-51-9"),
    ("berkelium", "Bk", "7440-40-6"),
    ("californium", "Cf", "7440-71-3"),
    ("einsteinium", "Es", "7429-92-7"),
    ("fermium", "Fm", "7440-72-4"),
    ("mendelevium", "Md", "7440-11-1"),
    ("nobelium", "No", "10028-14-5"),
    ("lawrencium", "Lr", "22537-19-5"),
    ("rutherfordium", "Rf", "53850-36-5"),
    ("dubnium", "Db", "53850-35-4"),
    ("seaborgium", "Sg", "54038-81-2"),
    ("bohrium", "Bh", "54037-14-8"),
    ("hassium", "Hs", "54037-57-9"),
    ("meitnerium", "Mt", "54038-01-6"),
    ("darmstadtium", "Ds", "54083-77-1"),
    ("roentgenium", "Rg", "54386-24-2"),
    ("copernicium", "Cn", "54084-26-3"),
    ("nihonium", "Nh", "54084-70-7"),
    ("flerovium", "Fl", "54085-16-4"),
    ("moscovium", "Mc", "54085-64-2"),
    ("livermorium", "Lv", "54100-71-9"),
    ("tennessine", "Ts", "87658-56-8"),
    ("oganesson", "Og", "54144-19-3"),
)

# Alternative spellings accepted in certificate tables
NAME_ALIASES = {
    "aluminum": "aluminium",
}


def _build_registry() -> dict[str, str]:
    registry: dict[str, str] = {}
    for name, symbol, cas in ELEMENTS:
        registry[name] = cas
        registry[symbol.lower()] = cas
    for alias, name in NAME_ALIASES.items():
        registry[alias] = registry[name]
    return registry


CAS_REGISTRY: dict[str, str] = _build_registry()


def get_cas_number(name_or_symbol: Optional[str]) -> Optional[str]:
    """Case-insensitive lookup by element name or symbol."""
    if not name_or_symbol:
        return None
    return CAS_REGISTRY.get(name_or_symbol.strip().lower())


def cas_link(cas: str) -> str:
    return CAS_LINK_TEMPLATE.format(cas=cas)


def cas_identifier(name_or_symbol: Optional[str]) -> Optional[Identifier]:
    """Build the derived CAS identifier for a quantity row name, if any."""
    cas = get_cas_number(name_or_symbol)
    if cas is None:
        return None
    return Identifier(scheme=CAS_SCHEME, value=cas, link=cas_link(cas))
