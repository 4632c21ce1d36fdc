"""Deterministic human-readable message ids.

``human_id_hash(seed, offset)`` maps ``sha256("<seed>:<offset>")`` onto
``adjective_adjective_animal_verb``. The mapping is a stable contract:
existing projects store these ids as file names, so changing the word lists
or the hash input changes every freshly imported id. Bump
``HUMAN_ID_VERSION`` if that ever has to happen.
"""

from __future__ import annotations

import hashlib

HUMAN_ID_VERSION = 1

ADJECTIVES = (
    "able", "bold", "brave", "bright", "calm", "clean", "clever", "cozy",
    "crisp", "curly", "daring", "early", "eager", "fair", "fancy", "fluffy",
    "fresh", "funny", "gentle", "giant", "grand", "happy", "honest", "jolly",
    "keen", "kind", "late", "lazy", "little", "lucky", "mellow", "merry",
    "mild", "misty", "modern", "neat", "noble", "odd", "plain", "polite",
    "proud", "quick", "quiet", "rare", "round", "royal", "salty", "sharp",
    "shiny", "short", "silly", "sleek", "slow", "smart", "smooth", "soft",
    "solid", "spicy", "steep", "sunny", "super", "sweet", "tame", "tidy",
)

ANIMALS = (
    "ant", "bat", "bear", "bee", "bird", "boar", "camel", "cat",
    "cow", "crab", "crow", "deer", "dingo", "dog", "dove", "duck",
    "eagle", "eel", "elk", "emu", "falcon", "fish", "fox", "frog",
    "goat", "goose", "hare", "hawk", "hen", "horse", "jay", "koala",
    "lamb", "lark", "lion", "lynx", "mole", "moose", "mouse", "mule",
    "newt", "okapi", "otter", "owl", "panda", "parrot", "pig", "puma",
    "rabbit", "rat", "raven", "seal", "shark", "sheep", "snail", "squid",
    "swan", "tiger", "toad", "trout", "turtle", "wasp", "whale", "wolf",
)

VERBS = (
    "adapt", "aim", "bake", "blink", "boil", "bounce", "build", "buy",
    "care", "catch", "chop", "clap", "climb", "cook", "cry", "dance",
    "dare", "dash", "dig", "dream", "drip", "drum", "earn", "enjoy",
    "fade", "feast", "fetch", "find", "fix", "fly", "gaze", "glow",
    "grow", "hike", "hope", "hug", "hunt", "jump", "kick", "kiss",
    "laugh", "lead", "leap", "lend", "lift", "list", "love", "march",
    "mix", "nap", "nudge", "pat", "peek", "pinch", "play", "pull",
    "race", "read", "rest", "roam", "sail", "sing", "skip", "swim",
)


def human_id_hash(seed: str, offset: int = 0) -> str:
    """Stable id for ``seed``; a different ``offset`` gives a different candidate."""
    digest = hashlib.sha256(f"{seed}:{offset}".encode("utf-8")).digest()
    return "_".join(
        [
            ADJECTIVES[digest[0] % len(ADJECTIVES)],
            ADJECTIVES[digest[1] % len(ADJECTIVES)],
            ANIMALS[digest[2] % len(ANIMALS)],
            VERBS[digest[3] % len(VERBS)],
        ]
    )
