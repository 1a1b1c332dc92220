"""Polish display labels for legal enums (served by GET /api/v1/legal/labels)."""

STAGE_TYPE_LABELS = {
    "policja": "Policja",
    "prokuratura": "Prokuratura",
    "sad_rejonowy": "Sąd Rejonowy",
    "sad_okregowy": "Sąd Okręgowy",
    "sad_apelacyjny": "Sąd Apelacyjny",
    "sad_najwyzszy": "Sąd Najwyższy",
    "organ_administracyjny": "Organ administracyjny",
    "wsa": "Wojewódzki Sąd Administracyjny",
    "nsa": "Naczelny Sąd Administracyjny",
    "komornik": "Komornik",
    "mediacja": "Mediacja",
    "arbitraz": "Arbitraż",
    "inne": "Inne",
}

STAGE_TYPE_ICONS = {
    "policja": "🚔",
    "prokuratura": "⚖️",
    "sad_rejonowy": "🏛️",
    "sad_okregowy": "🏛️",
    "sad_apelacyjny": "🏛️",
    "sad_najwyzszy": "🏛️",
    "organ_administracyjny": "🏢",
    "wsa": "🏛️",
    "nsa": "🏛️",
    "komornik": "📋",
    "mediacja": "🤝",
    "arbitraz": "⚖️",
    "inne": "📁",
}

OUTCOME_LABELS = {
    "w_toku": "W toku",
    "przekazano": "Przekazano",
    "umorzono": "Umorzono",
    "wyrok_korzystny": "Wyrok korzystny",
    "wyrok_niekorzystny": "Wyrok niekorzystny",
    "ugoda": "Ugoda",
    "apelacja": "Apelacja",
    "kasacja": "Kasacja",
    "zakonczone": "Zakończone",
}

CASE_STATUS_LABELS = {
    "active": "Aktywna",
    "archived": "Zarchiwizowana",
    "won": "Wygrana",
    "lost": "Przegrana",
    "settled": "Ugoda",
    "dismissed": "Oddalona",
}

CATEGORY_LABELS = {
    "cywilne": "Cywilne",
    "administracyjne": "Administracyjne",
    "pracownicze": "Pracownicze",
    "konsumenckie": "Konsumenckie",
    "rodzinne": "Rodzinne",
    "spadkowe": "Spadkowe",
    "nieruchomosci": "Nieruchomości",
    "umowy": "Umowy",
    "karne": "Karne",
    "wykroczenia": "Wykroczenia",
}

PARTY_TYPE_LABELS = {
    "powod": "Powód",
    "pozwany": "Pozwany",
    "wnioskodawca": "Wnioskodawca",
    "uczestnik": "Uczestnik",
    "oskarzyciel": "Oskarżyciel",
    "oskarzony": "Oskarżony",
    "pokrzywdzony": "Pokrzywdzony",
    "swiadek": "Świadek",
    "biegly": "Biegły",
    "interwenient": "Interwenient",
    "kurator": "Kurator",
    "pelnomonik": "Pełnomocnik",
}

DOCUMENT_TYPE_LABELS = {
    "ustawa": "Ustawa",
    "rozporzadzenie": "Rozporządzenie",
    "kodeks": "Kodeks",
    "orzeczenie": "Orzeczenie",
    "template": "Szablon",
    "umowa": "Umowa",
    "pozew": "Pozew",
    "wniosek": "Wniosek",
    "odwolanie": "Odwołanie",
    "wezwanie": "Wezwanie",
    "pismo": "Pismo",
    "skarga": "Skarga",
}


def all_labels() -> dict:
    return {
        "stageTypes": STAGE_TYPE_LABELS,
        "stageTypeIcons": STAGE_TYPE_ICONS,
        "outcomes": OUTCOME_LABELS,
        "caseStatuses": CASE_STATUS_LABELS,
        "categories": CATEGORY_LABELS,
        "partyTypes": PARTY_TYPE_LABELS,
        "documentTypes": DOCUMENT_TYPE_LABELS,
    }
