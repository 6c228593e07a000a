# Vault - Password Generator
#
# Random passwords from up to four character classes, using the OS CSPRNG
# (secrets module) for every choice and for the final shuffle.

import secrets
import string
from dataclasses import dataclass
from typing import List

from .exceptions import InvalidConfig

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
NUMBERS = string.digits
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

DEFAULT_LENGTH = 16
MAX_LENGTH = 64

_sysrand = secrets.SystemRandom()


@dataclass
class GeneratorConfig:
    """Generator settings. Transient, never persisted."""

    length: int = DEFAULT_LENGTH
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_symbols: bool = True

    def character_classes(self) -> List[str]:
        """Enabled character classes, falling back to lowercase only."""
        classes = []
        if self.include_uppercase:
            classes.append(UPPERCASE)
        if self.include_lowercase:
            classes.append(LOWERCASE)
        if self.include_numbers:
            classes.append(NUMBERS)
        if self.include_symbols:
            classes.append(SYMBOLS)
        if not classes:
            classes.append(LOWERCASE)
        return classes


def generate_password(config: GeneratorConfig = None) -> str:
    """
    Generate a cryptographically secure random password.

    One character is drawn from each enabled class first, the rest of the
    length is filled from the union of enabled classes, then the whole
    string is shuffled so the seeded characters have no fixed position.

    Args:
        config: Generator settings (defaults: 16 chars, all classes)

    Returns:
        Random password string of exactly config.length characters

    Raises:
        InvalidConfig: length is smaller than the number of enabled classes
    """
    if config is None:
        config = GeneratorConfig()

    classes = config.character_classes()
    if config.length < len(classes):
        raise InvalidConfig(
            f"Password length {config.length} is too short for "
            f"{len(classes)} required character classes"
        )

    chars = [secrets.choice(pool) for pool in classes]

    union = "".join(classes)
    for _ in range(config.length - len(chars)):
        chars.append(secrets.choice(union))

    _sysrand.shuffle(chars)
    return "".join(chars)
