"""
Utility functions for generating share codes.

Share codes are easy to read out loud and to type: groups of alternating
consonants and vowels separated by dashes, e.g. "tuza-pome-qubi". They only
use [a-z-], so every code is a valid share name.
"""
import secrets

CONSONANTS = "zrtypqsdfghjkmwxcvnb"
VOWELS = "aeiouy"


def generate_code(groups: int = 3, group_len: int = 4) -> str:
    """
    Generate a random, pronounceable share code.

    Args:
        groups: Number of dash-separated groups (default: 3)
        group_len: Number of letters in each group (default: 4)

    Returns:
        Share code such as "tuza-pome-qubi"

    Notes:
        - 3 groups of 4 letters give ~41 bits of entropy
        - Letters alternate consonant / vowel, starting with a consonant
    """
    code = []
    for _ in range(groups):
        letters = [
            secrets.choice(CONSONANTS if i % 2 == 0 else VOWELS)
            for i in range(group_len)
        ]
        code.append("".join(letters))
    return "-".join(code)
