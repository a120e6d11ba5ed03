"""Reference list of Dutch municipalities (CBS figures, approximate centres)."""

from dataclasses import dataclass

from lcl_scraper.core.models import Coordinates


@dataclass(frozen=True)
class Municipality:
    name: str
    province: str
    population: int
    lat: float
    lng: float

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


# > 100k residents, prioritized for discovery
MAJOR_MUNICIPALITIES: list[Municipality] = [
    Municipality("Amsterdam", "Noord-Holland", 882633, 52.3676, 4.9041),
    Municipality("Rotterdam", "Zuid-Holland", 656050, 51.9225, 4.4792),
    Municipality("Den Haag", "Zuid-Holland", 552995, 52.0705, 4.3007),
    Municipality("Utrecht", "Utrecht", 361924, 52.0907, 5.1214),
    Municipality("Eindhoven", "Noord-Brabant", 238478, 51.4416, 5.4697),
    Municipality("Groningen", "Groningen", 234649, 53.2194, 6.5665),
    Municipality("Tilburg", "Noord-Brabant", 224702, 51.5555, 5.0913),
    Municipality("Almere", "Flevoland", 218096, 52.3508, 5.2647),
    Municipality("Breda", "Noord-Brabant", 185587, 51.5719, 4.7683),
    Municipality("Nijmegen", "Gelderland", 179073, 51.8126, 5.8372),
    Municipality("Apeldoorn", "Gelderland", 165474, 52.2112, 5.9699),
    Municipality("Arnhem", "Gelderland", 163888, 51.9851, 5.8987),
    Municipality("Haarlem", "Noord-Holland", 162902, 52.3874, 4.6462),
    Municipality("Haarlemmermeer", "Noord-Holland", 158356, 52.3030, 4.6888),
    Municipality("Enschede", "Overijssel", 158553, 52.2215, 6.8937),
    Municipality("Amersfoort", "Utrecht", 158005, 52.1561, 5.3878),
    Municipality("Zaanstad", "Noord-Holland", 156802, 52.4566, 4.8083),
    Municipality("'s-Hertogenbosch", "Noord-Brabant", 156754, 51.6978, 5.3037),
    Municipality("Zwolle", "Overijssel", 132397, 52.5168, 6.0830),
    Municipality("Leiden", "Zuid-Holland", 125574, 52.1601, 4.4970),
    Municipality("Leeuwarden", "Friesland", 124481, 53.2012, 5.7999),
    Municipality("Maastricht", "Limburg", 121151, 50.8514, 5.6910),
    Municipality("Dordrecht", "Zuid-Holland", 119395, 51.8133, 4.6901),
    Municipality("Zoetermeer", "Zuid-Holland", 126322, 52.0572, 4.4931),
    Municipality("Westland", "Zuid-Holland", 113236, 52.0299, 4.2128),
    Municipality("Emmen", "Drenthe", 107235, 52.7792, 6.8995),
    Municipality("Ede", "Gelderland", 119802, 52.0484, 5.6650),
    Municipality("Venlo", "Limburg", 101999, 51.3704, 6.1724),
    Municipality("Delft", "Zuid-Holland", 104463, 52.0116, 4.3571),
    Municipality("Deventer", "Overijssel", 101514, 52.2500, 6.1640),
]

MEDIUM_MUNICIPALITIES: list[Municipality] = [
    Municipality("Alkmaar", "Noord-Holland", 110918, 52.6324, 4.7534),
    Municipality("Sittard-Geleen", "Limburg", 91817, 50.9987, 5.8627),
    Municipality("Heerlen", "Limburg", 86877, 50.8882, 5.9792),
    Municipality("Helmond", "Noord-Brabant", 93472, 51.4758, 5.6615),
    Municipality("Hilversum", "Noord-Holland", 92337, 52.2292, 5.1669),
    Municipality("Oss", "Noord-Brabant", 93091, 51.7651, 5.5183),
    Municipality("Roosendaal", "Noord-Brabant", 77096, 51.5308, 4.4652),
    Municipality("Purmerend", "Noord-Holland", 82127, 52.5054, 4.9590),
    Municipality("Schiedam", "Zuid-Holland", 80069, 51.9167, 4.3889),
    Municipality("Almelo", "Overijssel", 73026, 52.3567, 6.6623),
    Municipality("Lelystad", "Flevoland", 81465, 52.5185, 5.4714),
    Municipality("Hoorn", "Noord-Holland", 73814, 52.6439, 5.0594),
    Municipality("Vlaardingen", "Zuid-Holland", 72389, 51.9125, 4.3419),
    Municipality("Velsen", "Noord-Holland", 68792, 52.4597, 4.6203),
    Municipality("Bergen op Zoom", "Noord-Brabant", 67227, 51.4949, 4.2911),
    Municipality("Gouda", "Zuid-Holland", 74610, 52.0115, 4.7104),
    Municipality("Katwijk", "Zuid-Holland", 66267, 52.2019, 4.4147),
    Municipality("Meppel", "Drenthe", 34893, 52.6957, 6.1944),
    Municipality("Assen", "Drenthe", 68776, 52.9925, 6.5649),
    Municipality("Hoogeveen", "Drenthe", 55756, 52.7236, 6.4756),
    Municipality("Kampen", "Overijssel", 54696, 52.5557, 5.9096),
    Municipality("Hardenberg", "Overijssel", 61259, 52.5764, 6.6208),
    Municipality("Veenendaal", "Utrecht", 67617, 52.0281, 5.5583),
    Municipality("Zeist", "Utrecht", 64835, 52.0887, 5.2339),
    Municipality("Nieuwegein", "Utrecht", 64892, 52.0302, 5.0848),
    Municipality("Houten", "Utrecht", 51148, 52.0285, 5.1688),
    Municipality("Capelle aan den IJssel", "Zuid-Holland", 67088, 51.9295, 4.5780),
    Municipality("Spijkenisse", "Zuid-Holland", 71667, 51.8467, 4.3292),
    Municipality("Middelburg", "Zeeland", 49161, 51.4988, 3.6136),
    Municipality("Vlissingen", "Zeeland", 44534, 51.4536, 3.5714),
    Municipality("Goes", "Zeeland", 38788, 51.5040, 3.8901),
    Municipality("Terneuzen", "Zeeland", 54545, 51.3373, 3.8281),
]

SMALL_MUNICIPALITIES: list[Municipality] = [
    Municipality("Vught", "Noord-Brabant", 26926, 51.6561, 5.2948),
    Municipality("Boxtel", "Noord-Brabant", 32027, 51.5911, 5.3289),
    Municipality("Veghel", "Noord-Brabant", 38245, 51.6144, 5.5488),
    Municipality("Waalwijk", "Noord-Brabant", 48842, 51.6827, 5.0713),
    Municipality("Cuijk", "Noord-Brabant", 25139, 51.7284, 5.8803),
    Municipality("Uden", "Noord-Brabant", 42156, 51.6610, 5.6190),
    Municipality("Best", "Noord-Brabant", 30469, 51.5093, 5.3902),
    Municipality("Geldrop-Mierlo", "Noord-Brabant", 40179, 51.4202, 5.5589),
    Municipality("Valkenswaard", "Noord-Brabant", 31286, 51.3516, 5.4614),
    Municipality("Culemborg", "Gelderland", 29691, 51.9572, 5.2279),
    Municipality("Tiel", "Gelderland", 42015, 51.8867, 5.4283),
    Municipality("Barneveld", "Gelderland", 60185, 52.1400, 5.5881),
    Municipality("Wageningen", "Gelderland", 40016, 51.9692, 5.6653),
    Municipality("Doetinchem", "Gelderland", 58395, 51.9655, 6.2883),
    Municipality("Winterswijk", "Gelderland", 29123, 51.9707, 6.7194),
    Municipality("Harderwijk", "Gelderland", 48691, 52.3421, 5.6200),
    Municipality("Ermelo", "Gelderland", 27657, 52.2997, 5.6200),
    Municipality("Nunspeet", "Gelderland", 28325, 52.3767, 5.7850),
    Municipality("Elburg", "Gelderland", 23563, 52.4500, 5.8350),
    Municipality("Zutphen", "Gelderland", 48168, 52.1385, 6.2014),
    Municipality("Lochem", "Gelderland", 34027, 52.1607, 6.4144),
    Municipality("Hengelo", "Overijssel", 81165, 52.2658, 6.7931),
    Municipality("Oldenzaal", "Overijssel", 32173, 52.3106, 6.9292),
    Municipality("Raalte", "Overijssel", 38119, 52.3878, 6.2750),
    Municipality("Dalfsen", "Overijssel", 28952, 52.5069, 6.2553),
    Municipality("Steenwijkerland", "Overijssel", 44530, 52.7883, 6.1192),
    Municipality("Staphorst", "Overijssel", 17302, 52.6403, 6.2092),
    Municipality("Coevorden", "Drenthe", 35175, 52.6617, 6.7408),
    Municipality("Borger-Odoorn", "Drenthe", 25420, 52.9283, 6.7903),
    Municipality("Tynaarlo", "Drenthe", 34195, 53.0742, 6.5931),
    Municipality("Noordenveld", "Drenthe", 31705, 53.1408, 6.4525),
    Municipality("Westerveld", "Drenthe", 19474, 52.8492, 6.3058),
    Municipality("De Wolden", "Drenthe", 24378, 52.7117, 6.3500),
    Municipality("Midden-Drenthe", "Drenthe", 33453, 52.8575, 6.5533),
    Municipality("Aa en Hunze", "Drenthe", 25632, 52.9817, 6.7342),
    Municipality("Harlingen", "Friesland", 15892, 53.1742, 5.4236),
    Municipality("Franekeradeel", "Friesland", 20466, 53.1833, 5.5417),
    Municipality("Het Bildt", "Friesland", 10655, 53.2583, 5.5917),
    Municipality("Menameradiel", "Friesland", 13895, 53.2042, 5.6250),
    Municipality("Súdwest-Fryslân", "Friesland", 89914, 53.0333, 5.6500),
    Municipality("De Fryske Marren", "Friesland", 51775, 52.9333, 5.7500),
    Municipality("Heerenveen", "Friesland", 50542, 52.9592, 5.9231),
    Municipality("Smallingerland", "Friesland", 56141, 53.1000, 6.0833),
    Municipality("Tytsjerksteradiel", "Friesland", 32006, 53.2167, 5.9667),
    Municipality("Dantumadiel", "Friesland", 18990, 53.2917, 6.0083),
    Municipality("Dongeradeel", "Friesland", 23997, 53.3667, 6.0167),
    Municipality("Kollumerland en Nieuwkruisland", "Friesland", 12757, 53.2750, 6.1583),
    Municipality("Achtkarspelen", "Friesland", 27929, 53.2250, 6.1250),
    Municipality("Opsterland", "Friesland", 29942, 53.0667, 6.1667),
    Municipality("Ooststellingwerf", "Friesland", 25576, 52.9500, 6.2833),
    Municipality("Weststellingwerf", "Friesland", 25877, 52.8917, 6.0167),
]

ALL_MUNICIPALITIES: list[Municipality] = sorted(
    [*MAJOR_MUNICIPALITIES, *MEDIUM_MUNICIPALITIES, *SMALL_MUNICIPALITIES],
    key=lambda m: m.population,
    reverse=True,
)


def _normalize_name(name: str) -> str:
    return name.strip().lower().replace("’", "'")


def find_municipality(name: str) -> Municipality | None:
    """Case-insensitive lookup by name."""
    wanted = _normalize_name(name)
    for municipality in ALL_MUNICIPALITIES:
        if _normalize_name(municipality.name) == wanted:
            return municipality
    return None


def municipalities_by_province(province: str) -> list[Municipality]:
    return [m for m in ALL_MUNICIPALITIES if m.province.lower() == province.lower()]


def select_municipalities(
    min_population: int = 1000,
    max_municipalities: int | None = None,
    names: list[str] | None = None,
) -> list[Municipality]:
    """Municipalities to process, largest first.

    Explicit ``names`` win over ``min_population``; ``max_municipalities``
    caps the result when positive.
    """
    if names:
        wanted = {_normalize_name(n) for n in names}
        selected = [m for m in ALL_MUNICIPALITIES if _normalize_name(m.name) in wanted]
    else:
        selected = [m for m in ALL_MUNICIPALITIES if m.population >= min_population]

    if max_municipalities and max_municipalities > 0:
        return selected[:max_municipalities]
    return selected
