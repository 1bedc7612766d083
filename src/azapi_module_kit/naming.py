from __future__ import annotations

import re

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def _is_alnum(char: str) -> bool:
    return char.isalpha() or char.isdigit()


def to_snake_case(value: str) -> str:
    """Convert an API property name to a Terraform attribute name.

    HTTPClient -> http_client, MyAPIs -> my_apis, foo.bar -> foo_bar
    """
    chars = list(value)
    out: list[str] = []
    prev_was_underscore = False
    wrote_any = False

    def prev_alnum(index: int) -> str | None:
        for j in range(index - 1, -1, -1):
            if _is_alnum(chars[j]):
                return chars[j]
        return None

    def next_alnum(index: int) -> str | None:
        for j in range(index + 1, len(chars)):
            if _is_alnum(chars[j]):
                return chars[j]
        return None

    for i, char in enumerate(chars):
        if not _is_alnum(char):
            if wrote_any and not prev_was_underscore:
                out.append("_")
                prev_was_underscore = True
            continue

        if char.isupper():
            prev = prev_alnum(i)
            if prev is not None:
                if (prev.islower() or prev.isdigit()) and not prev_was_underscore:
                    out.append("_")
                if prev.isupper():
                    nxt = next_alnum(i)
                    if nxt is not None and nxt.islower():
                        j = i + 1
                        while j < len(chars):
                            if not _is_alnum(chars[j]):
                                j += 1
                                continue
                            if not chars[j].islower():
                                break
                            j += 1
                        lower_len = j - (i + 1)

                        # A lone trailing "s" is a plural acronym (APIs), not a new word.
                        if lower_len > 1 and not prev_was_underscore:
                            out.append("_")
                        if lower_len == 1 and nxt != "s" and not prev_was_underscore:
                            out.append("_")

        out.append(char.lower())
        wrote_any = True
        prev_was_underscore = False

    result = "".join(out).strip("_")
    if result and result[0].isdigit():
        result = f"field_{result}"
    return result


def is_hcl_identifier(value: str) -> bool:
    return bool(IDENTIFIER_PATTERN.match(value))
