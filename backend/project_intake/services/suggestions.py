"""Topic and driving-question suggestions for the intake helper UI.

A plain keyword table. Nothing in validation or scoring reads these.
"""

MAX_SUGGESTIONS = 5

_KEYWORD_SUGGESTIONS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (
        ("water", "river", "ocean", "pollution"),
        (
            "Investigating water quality in our local watershed",
            "How might we keep the water in our community clean?",
            "Designing a filtration system from everyday materials",
        ),
    ),
    (
        ("climate", "environment", "ecosystem", "sustainab", "energy"),
        (
            "Reducing our school's energy footprint",
            "How can we make our neighborhood more sustainable?",
            "Mapping the ecosystems around our school",
        ),
    ),
    (
        ("history", "heritage", "past", "community"),
        (
            "Recording oral histories from our community",
            "How has our town changed over the last hundred years?",
            "Curating a museum exhibit about local heritage",
        ),
    ),
    (
        ("code", "coding", "robot", "apps", "technology", "computer"),
        (
            "Building an app that solves a problem at school",
            "How can technology help people in our community?",
            "Programming robots to complete a real-world task",
        ),
    ),
    (
        ("math", "data", "budget", "statistic"),
        (
            "Planning a class event on a real budget",
            "What story does the data about our school tell?",
            "Designing a survey and analysing the results",
        ),
    ),
    (
        ("art", "music", "design", "story", "writing"),
        (
            "Creating a public art piece for the school grounds",
            "How can we use stories to change someone's mind?",
            "Publishing a magazine written by the class",
        ),
    ),
    (
        ("food", "garden", "health", "nutrition"),
        (
            "Growing and harvesting a school garden",
            "How can we make healthy food easier to choose?",
            "Designing a menu for the school cafeteria",
        ),
    ),
)

DEFAULT_SUGGESTIONS = (
    "Solving a real problem in our school or neighborhood",
    "How can we make our community a better place to live?",
    "Designing something that helps a younger grade learn",
    "Investigating a question students care about",
    "Creating a product for a real audience",
)


def suggestions_for(text: str | None) -> list[str]:
    """Up to five suggestions matching keywords in ``text``.

    Empty or unmatched input gets the default set.
    """
    words = (text or "").lower().split()
    if not words:
        return list(DEFAULT_SUGGESTIONS[:MAX_SUGGESTIONS])

    matches: list[str] = []
    for keywords, suggestions in _KEYWORD_SUGGESTIONS:
        if any(keyword in word for word in words for keyword in keywords):
            for suggestion in suggestions:
                if suggestion not in matches:
                    matches.append(suggestion)

    if not matches:
        return list(DEFAULT_SUGGESTIONS[:MAX_SUGGESTIONS])
    return matches[:MAX_SUGGESTIONS]
