"""Internal event categories and a keyword classifier (Dutch + English)."""

from dataclasses import dataclass

DEFAULT_CATEGORY = "community"


@dataclass(frozen=True)
class CategoryDefinition:
    id: str
    label_nl: str
    label_en: str
    search_terms_nl: tuple[str, ...]
    keywords_nl: tuple[str, ...]
    keywords_en: tuple[str, ...]

    @property
    def keywords(self) -> tuple[str, ...]:
        return self.keywords_nl + self.keywords_en


# ============================================================
# CATEGORY DEFINITIONS
# ============================================================

CATEGORIES: list[CategoryDefinition] = [
    CategoryDefinition(
        id="active",
        label_nl="Sport & Actief",
        label_en="Active",
        search_terms_nl=("sport", "fitness", "hardlopen", "wielrennen", "zwemmen", "wandelen", "yoga"),
        keywords_nl=("sport", "fitness", "hardlopen", "wielrennen", "fietsen", "zwemmen", "yoga",
                     "bootcamp", "marathon", "trimloop", "atletiek", "gym", "crossfit", "voetbal"),
        keywords_en=("running", "cycling", "swimming", "workout", "soccer", "football"),
    ),
    CategoryDefinition(
        id="gaming",
        label_nl="Gaming",
        label_en="Gaming",
        search_terms_nl=("gaming", "esports", "spelletjes", "boardgames"),
        keywords_nl=("gaming", "esports", "spelletjes", "bordspellen", "videogames", "lan-party",
                     "gamenight", "spellenavond", "dungeons", "roleplay"),
        keywords_en=("video games", "board games", "tabletop", "lan party"),
    ),
    CategoryDefinition(
        id="entertainment",
        label_nl="Entertainment",
        label_en="Entertainment",
        search_terms_nl=("theater", "film", "comedy", "cabaret", "bioscoop", "voorstelling"),
        keywords_nl=("theater", "film", "bioscoop", "comedy", "cabaret", "musical", "voorstelling",
                     "stand-up", "circus", "entertainment"),
        keywords_en=("cinema", "show", "performance", "theatre"),
    ),
    CategoryDefinition(
        id="social",
        label_nl="Sociaal",
        label_en="Social",
        search_terms_nl=("borrel", "netwerken", "meetup", "ontmoeting", "sociaal"),
        keywords_nl=("borrel", "vrijmibo", "netwerken", "meetup", "ontmoeting", "bijeenkomst", "sociaal"),
        keywords_en=("networking", "social", "drinks", "happy hour", "afterwork", "gathering"),
    ),
    CategoryDefinition(
        id="family",
        label_nl="Familie",
        label_en="Family",
        search_terms_nl=("kinderen", "familie", "gezin", "jeugd", "speeltuin"),
        keywords_nl=("kinderen", "kids", "familie", "gezin", "jeugd", "knutselen", "familiedag",
                     "kinderfestival"),
        keywords_en=("children", "family", "youth", "playground"),
    ),
    CategoryDefinition(
        id="outdoors",
        label_nl="Buitenactiviteiten",
        label_en="Outdoors",
        search_terms_nl=("natuur", "buiten", "wandeling", "excursie", "outdoor"),
        keywords_nl=("natuur", "outdoor", "wandeling", "excursie", "fietstocht", "vogelen",
                     "kamperen", "picknick", "strand", "duinen"),
        keywords_en=("nature", "hiking", "excursion", "birdwatching", "camping", "picnic", "beach"),
    ),
    CategoryDefinition(
        id="music",
        label_nl="Muziek",
        label_en="Music",
        search_terms_nl=("concert", "muziek", "festival", "live muziek", "optreden"),
        keywords_nl=("concert", "muziek", "festival", "optreden", "band", "jazz", "klassiek",
                     "techno", "openlucht"),
        keywords_en=("music", "live", "dj", "classical", "rock", "pop"),
    ),
    CategoryDefinition(
        id="workshops",
        label_nl="Workshops",
        label_en="Workshops",
        search_terms_nl=("workshop", "cursus", "les", "training", "masterclass"),
        keywords_nl=("workshop", "cursus", "training", "masterclass", "lezing", "college",
                     "creatief", "schilderen", "fotograferen", "ambacht"),
        keywords_en=("course", "lesson", "lecture", "painting", "photography", "craft"),
    ),
    CategoryDefinition(
        id="foodie",
        label_nl="Food & Drink",
        label_en="Foodie",
        search_terms_nl=("eten", "proeverij", "wijn", "bier", "culinair", "markt"),
        keywords_nl=("eten", "proeverij", "wijn", "bier", "culinair", "foodtruck", "koken",
                     "diner", "high tea"),
        keywords_en=("food", "tasting", "wine", "beer", "culinary", "food truck", "cooking", "dinner"),
    ),
    CategoryDefinition(
        id="community",
        label_nl="Community",
        label_en="Community",
        search_terms_nl=("buurt", "wijk", "gemeente", "vrijwilliger", "inspraak"),
        keywords_nl=("buurt", "wijk", "vrijwilliger", "inspraak", "bewoners", "vereniging",
                     "buurthuis", "wijkcentrum"),
        keywords_en=("neighborhood", "community", "volunteer", "community center"),
    ),
]

CATEGORY_IDS = [c.id for c in CATEGORIES]

# Parenting terms force "family" regardless of other matches
FAMILY_OVERRIDE_KEYWORDS = (
    "basisschool", "speeltuin", "kinderopvang", "zwemles", "peutergroep", "kinderfeest",
    "kinderboerderij", "kinderdisco", "sinterklaas", "voorlezen", "ouder-kind",
)

# Adult social terms; food terms among them tip to "foodie"
SOCIAL_OVERRIDE_KEYWORDS = (
    "borrel", "vrijdagmiddag", "vrijmibo", "netwerken", "networking", "proeverij",
    "happy hour", "afterwork", "singles", "speed date",
)
_FOOD_TERMS = ("proeverij", "wijn", "bier", "eten")


def get_category(category_id: str) -> CategoryDefinition | None:
    for category in CATEGORIES:
        if category.id == category_id:
            return category
    return None


def classify_text(*texts: str | None) -> str:
    """Map free text (hint, title, description) onto an internal category.

    Returns:
        One of CATEGORY_IDS; "community" when nothing matches
    """
    text = " ".join(t for t in texts if t).lower()
    if not text:
        return DEFAULT_CATEGORY

    if text.strip() in CATEGORY_IDS:
        return text.strip()

    if any(k in text for k in FAMILY_OVERRIDE_KEYWORDS):
        return "family"

    if any(k in text for k in SOCIAL_OVERRIDE_KEYWORDS):
        return "foodie" if any(k in text for k in _FOOD_TERMS) else "social"

    for category in CATEGORIES:
        if any(k in text for k in category.keywords):
            return category.id

    return DEFAULT_CATEGORY
