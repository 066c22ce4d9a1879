"""Scene catalog: the fixed, ordered list of predefined scenes."""
import random
import re
import threading
from pathlib import Path
from typing import Iterable, Optional

from pydantic import TypeAdapter

from karl_selfie.core.config import get_settings
from karl_selfie.core.logging import setup_logging
from karl_selfie.models.scene import Scene

logger = setup_logging("scenes")

DEFAULT_SCENES: tuple[Scene, ...] = (
    Scene(
        id=1,
        emoji="🍕",
        short_title="Pizza-Götter im Weltall",
        full_prompt="Der Nutzer und Karl der Kasten sitzen als riesige Götter auf einer schwimmenden Pizza im Weltall und streiten sich darum, ob Ananas darauf gehört, während Astronauten weinen.",
    ),
    Scene(
        id=2,
        emoji="☕",
        short_title="Barista & Latte-Art-Drache",
        full_prompt="Karl der Kasten ist ein grimmiger Barista in einem surrealen Café, während der Nutzer als Latte Art in Form eines Drachen aus der Kaffeetasse aufsteigt.",
    ),
    Scene(
        id=3,
        emoji="🌵",
        short_title="Cyberpunk-Wüste reiten",
        full_prompt="Der Nutzer reitet auf Karl dem Kasten wie auf einem störrischen Holzpferd durch eine neonfarbene Cyberpunk-Wüste voller tanzender Kakteen.",
    ),
    Scene(
        id=4,
        emoji="♟️",
        short_title="Schach mit Mini-Versionen",
        full_prompt="Karl der Kasten und der Nutzer spielen Schach, aber die Figuren sind kleine Versionen von ihnen selbst, die panisch vom Brett fliehen.",
    ),
    Scene(
        id=5,
        emoji="🦆",
        short_title="Gummientenregen im Smoking",
        full_prompt="Der Nutzer und Karl der Kasten stehen im Regen aus Gummienten, tragen Smoking, und diskutieren ernsthaft über Quantenphysik.",
    ),
    Scene(
        id=6,
        emoji="🍣",
        short_title="Sushi-Meister",
        full_prompt="Karl der Kasten ist ein grimmiger Sushi-Meister, während der Nutzer verzweifelt versucht, sich nicht selbst als Sushi rollen zu lassen.",
    ),
    Scene(
        id=7,
        emoji="📺",
        short_title="TV-News: Bananen-Untergang",
        full_prompt="Der Nutzer und Karl der Kasten sind Nachrichtensprecher in einer absurden TV-Show, die live über den Untergang einer Banane berichten.",
    ),
    Scene(
        id=8,
        emoji="🏛️",
        short_title="Tempel mit Popcorn-Opfergaben",
        full_prompt="Karl der Kasten als antiker Tempel, in dessen Innerem der Nutzer auf Rollschuhen Opfergaben aus Popcorn verteilt.",
    ),
    Scene(
        id=9,
        emoji="🛁",
        short_title="Badewanne voller Sterne",
        full_prompt="Der Nutzer und Karl der Kasten sitzen in einer Badewanne voller Sterne, planschen mit Galaxien und tragen lächerlich kleine Badehüte.",
    ),
    Scene(
        id=10,
        emoji="🎧",
        short_title="DJ & Tänzer auf Holz",
        full_prompt="Karl der Kasten ist ein grimmiger DJ, der Nutzer ein hyperaktiver Tänzer, während der Dancefloor aus wackelndem Holz besteht.",
    ),
    Scene(
        id=11,
        emoji="🏓",
        short_title="Tischtennis mit schreiendem Ei",
        full_prompt="Der Nutzer spielt Tischtennis gegen Karl den Kasten, aber der Ball ist ein schreiendes Ei und das Netz besteht aus Spaghetti.",
    ),
    Scene(
        id=12,
        emoji="⚔️",
        short_title="Ritter auf Staubsaugern",
        full_prompt="Karl der Kasten und der Nutzer sind mittelalterliche Ritter, die auf Staubsaugern in die Schlacht ziehen.",
    ),
    Scene(
        id=13,
        emoji="🧘",
        short_title="Mönche auf Legoberg",
        full_prompt="Der Nutzer und Karl der Kasten sitzen als philosophierende Mönche auf einem Berg aus Legosteinen.",
    ),
    Scene(
        id=14,
        emoji="👶",
        short_title="Babysitter & Business-Baby",
        full_prompt="Karl der Kasten als grimmiger Babysitter, der Nutzer ein riesiges Baby mit Anzug und Aktentasche.",
    ),
    Scene(
        id=15,
        emoji="🍉",
        short_title="Japanische Gameshow",
        full_prompt="Der Nutzer und Karl der Kasten in einer japanischen Gameshow, in der sie versuchen, einer riesigen rollenden Wassermelone zu entkommen.",
    ),
    Scene(
        id=16,
        emoji="🧊",
        short_title="Gedicht für den Kühlschrank",
        full_prompt="Karl der Kasten ist ein lebendiger Kühlschrank, der Nutzer versucht verzweifelt, ihm ein Gedicht vorzulesen.",
    ),
    Scene(
        id=17,
        emoji="🕵️",
        short_title="Film Noir Detektive",
        full_prompt="Der Nutzer und Karl der Kasten als Detektive in einem Film Noir, aber alles besteht aus Holz und Nebel.",
    ),
    Scene(
        id=18,
        emoji="😇",
        short_title="Engel vs Teufel auf Toast",
        full_prompt="Karl der Kasten als grimmiger Engel, der Nutzer als chaotischer Teufel auf einem Wolkenkratzer aus Toastbrot.",
    ),
    Scene(
        id=19,
        emoji="🏐",
        short_title="Beachvolleyball auf Zuckerwatte",
        full_prompt="Der Nutzer und Karl der Kasten spielen Beachvolleyball auf einem Strand aus Zuckerwatte, während Haie applaudieren.",
    ),
    Scene(
        id=20,
        emoji="🌵",
        short_title="Bewerbung beim Kaktus-Chef",
        full_prompt="Karl der Kasten und der Nutzer sitzen in einem absurden Bewerbungsgespräch – der Chef ist ein sprechender Kaktus.",
    ),
)

DEFAULT_EMOJI = "🎬"
SHORT_TITLE_WORDS = 5

_NUMBERING = re.compile(r"^\d+\.\s*")
_SCENE_LIST = TypeAdapter(list[Scene])


class SceneNotFound(LookupError):
    """No scene with the requested id."""

    def __init__(self, scene_id: int) -> None:
        super().__init__(f"Scene {scene_id} not found")
        self.scene_id = scene_id


class SceneCatalog:
    """Immutable, ordered collection of scenes with lookup by id."""

    def __init__(self, scenes: Iterable[Scene], rng: Optional[random.Random] = None) -> None:
        self._scenes = tuple(scenes)
        if not self._scenes:
            raise ValueError("Scene catalog must not be empty")
        self._by_id: dict[int, Scene] = {}
        for scene in self._scenes:
            if scene.id in self._by_id:
                raise ValueError(f"Duplicate scene id: {scene.id}")
            self._by_id[scene.id] = scene
        self._rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self._scenes)

    def list(self) -> tuple[Scene, ...]:
        return self._scenes

    def by_id(self, scene_id: int) -> Scene:
        try:
            return self._by_id[scene_id]
        except KeyError:
            raise SceneNotFound(scene_id) from None

    def random(self) -> Scene:
        return self._rng.choice(self._scenes)


def parse_numbered_scenes(text: str) -> list[Scene]:
    """Parse a plain prompt list ("1. ...", "2. ...") into scenes.

    Blank lines are skipped and leading numbering is stripped. Ids follow
    file order starting at 1; the short title is the first few words.
    """
    prompts = [_NUMBERING.sub("", line.strip()).strip() for line in text.splitlines()]
    prompts = [p for p in prompts if p]
    scenes = []
    for index, prompt in enumerate(prompts, start=1):
        words = prompt.split()
        title = " ".join(words[:SHORT_TITLE_WORDS])
        if len(words) > SHORT_TITLE_WORDS:
            title += " …"
        scenes.append(Scene(id=index, emoji=DEFAULT_EMOJI, short_title=title, full_prompt=prompt))
    return scenes


def load_scenes(path: Path) -> list[Scene]:
    """Load scenes from a JSON array or a numbered text file.

    Raises:
        OSError: The file cannot be read.
        ValueError: The file holds no scenes or invalid JSON.
    """
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        scenes = _SCENE_LIST.validate_json(content)
    else:
        scenes = parse_numbered_scenes(content)
    if not scenes:
        raise ValueError(f"No scenes found in {path}")
    return scenes


def build_catalog(scenes_file: Optional[Path] = None) -> SceneCatalog:
    """Build a catalog from ``scenes_file``, falling back to the built-in scenes."""
    if scenes_file is not None:
        try:
            catalog = SceneCatalog(load_scenes(scenes_file))
            logger.info("Loaded %d scenes from %s", len(catalog), scenes_file)
            return catalog
        except (OSError, ValueError) as exc:
            logger.error(
                "Could not load scenes from %s, using built-in catalog",
                scenes_file,
                exc_info=True,
                extra={"component": "SceneCatalog", "error_type": type(exc).__name__},
            )
    return SceneCatalog(DEFAULT_SCENES)


_catalog: Optional[SceneCatalog] = None
_catalog_lock = threading.Lock()


def get_scene_catalog() -> SceneCatalog:
    """Return the process-wide catalog, building it on first access."""
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            if _catalog is None:
                _catalog = build_catalog(get_settings().scenes_file)
    return _catalog
