"""French stop words, shared by every regional variant (fr-*)."""

STOPWORDS = frozenset(
    {
        "le",
        "la",
        "les",
        "un",
        "une",
        "des",
        "du",
        "de",
        "d",
        "au",
        "aux",
        "je",
        "tu",
        "il",
        "elle",
        "nous",
        "vous",
        "ils",
        "elles",
        "me",
        "te",
        "se",
        "moi",
        "toi",
        "lui",
        "leur",
        "eux",
        "mon",
        "ma",
        "mes",
        "ton",
        "ta",
        "tes",
        "son",
        "sa",
        "ses",
        "notre",
        "nos",
        "votre",
        "vos",
        "leurs",
        "ce",
        "cet",
        "cette",
        "ces",
        "quel",
        "quelle",
        "quels",
        "quelles",
        "qui",
        "que",
        "quoi",
        "dont",
        "où",
        "on",
        "y",
        "en",
        "à",
        "dans",
        "par",
        "pour",
        "vers",
        "avec",
        "sans",
        "sous",
        "sur",
        "chez",
        "entre",
        "parmi",
        "contre",
        "depuis",
        "pendant",
        "avant",
        "après",
        "devant",
        "derrière",
        "autour",
        "près",
        "loin",
        "et",
        "ou",
        "mais",
        "donc",
        "or",
        "ni",
        "car",
        "comme",
        "si",
        "quand",
        "lorsque",
        "puisque",
        "parce",
        "quoique",
        "bien",
        "être",
        "avoir",
        "faire",
        "aller",
        "pouvoir",
        "vouloir",
        "devoir",
        "savoir",
        "falloir",
        "est",
        "sont",
        "était",
        "étaient",
        "été",
        "a",
        "ont",
        "avait",
        "avaient",
        "eu",
        "fait",
        "font",
        "faisait",
        "faisaient",
        "va",
        "vont",
        "allait",
        "allaient",
        "allé",
        "peut",
        "peuvent",
        "pouvait",
        "pouvaient",
        "pu",
        "veut",
        "veulent",
        "voulait",
        "voulaient",
        "voulu",
        "doit",
        "doivent",
        "devait",
        "devaient",
        "dû",
        "ne",
        "pas",
        "plus",
        "jamais",
        "rien",
        "personne",
        "aucun",
        "aucune",
        "non",
        "oui",
        "très",
        "trop",
        "assez",
        "peu",
        "beaucoup",
        "mal",
        "mieux",
        "pire",
        "ici",
        "là",
        "ailleurs",
        "maintenant",
        "alors",
        "toujours",
        "souvent",
        "parfois",
        "déjà",
        "encore",
        "bientôt",
        "aujourd",
        "hui",
        "demain",
        "hier",
        "aussi",
        "ainsi",
        "même",
        "seulement",
        "plutôt",
        "tout",
        "toute",
        "tous",
        "toutes",
        "autre",
        "autres",
        "mêmes",
        "tel",
        "telle",
        "tels",
        "telles",
        "chaque",
        "quelque",
        "quelques",
        "certain",
        "certains",
        "plusieurs",
        "nul",
        "nulle",
        "ceci",
        "cela",
        "ça",
    }
)
