"""German stop words, shared by every regional variant (de-*)."""

STOPWORDS = frozenset(
    {
        "der",
        "die",
        "das",
        "den",
        "dem",
        "des",
        "ein",
        "eine",
        "einer",
        "eines",
        "einem",
        "einen",
        "ich",
        "du",
        "er",
        "sie",
        "es",
        "wir",
        "ihr",
        "mein",
        "meine",
        "dein",
        "deine",
        "sein",
        "seine",
        "ihre",
        "unser",
        "unsere",
        "euer",
        "eure",
        "dieser",
        "diese",
        "dieses",
        "jener",
        "jene",
        "jenes",
        "welcher",
        "welche",
        "welches",
        "man",
        "sich",
        "selbst",
        "in",
        "an",
        "auf",
        "bei",
        "durch",
        "für",
        "gegen",
        "hinter",
        "mit",
        "nach",
        "neben",
        "über",
        "unter",
        "von",
        "vor",
        "zu",
        "zwischen",
        "aus",
        "außer",
        "bis",
        "entlang",
        "gegenüber",
        "ohne",
        "seit",
        "um",
        "während",
        "wegen",
        "und",
        "oder",
        "aber",
        "denn",
        "sondern",
        "doch",
        "als",
        "dass",
        "ob",
        "obwohl",
        "weil",
        "wenn",
        "haben",
        "werden",
        "können",
        "müssen",
        "sollen",
        "wollen",
        "dürfen",
        "mögen",
        "möchten",
        "ist",
        "sind",
        "war",
        "waren",
        "gewesen",
        "hat",
        "hatte",
        "hatten",
        "gehabt",
        "wird",
        "wurde",
        "wurden",
        "geworden",
        "kann",
        "konnte",
        "konnten",
        "gekonnt",
        "muss",
        "musste",
        "mussten",
        "gemusst",
        "hier",
        "da",
        "dort",
        "wo",
        "wann",
        "wie",
        "warum",
        "auch",
        "noch",
        "nur",
        "schon",
        "sehr",
        "so",
        "mehr",
        "weniger",
        "viel",
        "wenig",
        "nie",
        "immer",
        "oft",
        "manchmal",
        "selten",
        "bereits",
        "bald",
        "dann",
        "jetzt",
        "nun",
        "ja",
        "nein",
        "nicht",
        "kein",
        "keine",
        "keiner",
        "all",
        "alle",
        "alles",
        "jeder",
        "jede",
        "jedes",
        "einige",
        "etliche",
        "manche",
        "mehrere",
        "viele",
        "was",
        "wer",
        "wen",
        "wem",
        "wessen",
        "etwas",
        "nichts",
    }
)
