"""
HTML to Markdown conversion.

html2text does the base conversion. Images, code and tables are rendered by
our own rules first: each matching element is swapped for a placeholder token,
html2text runs over the rest, and the tokens are replaced with the rendered
Markdown afterwards.
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional

import html2text
from bs4 import BeautifulSoup, Comment, Tag

LANGUAGE_CLASS = re.compile(r"^(?:language|lang)-(.+)$")


@dataclass(frozen=True)
class RuleSet:
    preserve_image_size: bool = True
    preserve_code_formatting: bool = True
    preserve_table_format: bool = True
    bullet_list_marker: str = "-"
    em_delimiter: str = "*"
    strong_delimiter: str = "**"


DEFAULT_RULES = RuleSet()


class _Placeholders:
    def __init__(self, soup: BeautifulSoup) -> None:
        self._soup = soup
        self.rendered: Dict[str, str] = {}

    def _token(self, markdown: str) -> str:
        token = f"MDPLACEHOLDER{len(self.rendered)}X"
        self.rendered[token] = markdown
        return token

    def inline(self, element: Tag, markdown: str) -> None:
        element.replace_with(self._token(markdown))

    def block(self, element: Tag, markdown: str) -> None:
        paragraph = self._soup.new_tag("p")
        paragraph.string = self._token(markdown)
        element.replace_with(paragraph)

    def restore(self, text: str) -> str:
        # Containers are tokenized after what they contain, so undo newest first.
        for token, markdown in reversed(list(self.rendered.items())):
            text = text.replace(token, markdown)
        return text


def _language(element: Tag) -> str:
    for candidate in [element, *element.find_all("code", limit=1)]:
        for class_name in candidate.get("class") or []:
            match = LANGUAGE_CLASS.match(class_name)
            if match:
                return match.group(1)
    return ""


def render_image(element: Tag, preserve_size: bool = True) -> str:
    src = element.get("src") or ""
    if not src:
        return ""
    alt = element.get("alt") or ""
    width = element.get("width")
    height = element.get("height")

    if preserve_size:
        if width and height:
            return f"![{alt}]({src} ={width}x{height})"
        if width:
            return f"![{alt}]({src} ={width}x)"
        if height:
            return f"![{alt}]({src} =x{height})"
    return f"![{alt}]({src})"


def render_code_block(element: Tag) -> str:
    code = element.get_text()
    if code.endswith("\n"):
        code = code[:-1]
    return f"\n```{_language(element)}\n{code}\n```\n"


def _table_rows(table: Tag):
    return [row for row in table.find_all("tr") if row.find_parent("table") is table]


def _cell_text(cell: Tag) -> str:
    # A pipe row is one line; placeholders inside the cell survive as tokens.
    return " ".join(cell.get_text().split()).replace("|", "\\|")


def render_table(table: Tag) -> Optional[str]:
    """Pipe table with the first row as header, or None for a table without rows."""
    rows = _table_rows(table)
    if not rows:
        return None

    def cells(row: Tag):
        return [_cell_text(cell) for cell in row.find_all(["th", "td"], recursive=False)]

    headers = cells(rows[0])
    lines = [
        f"| {' | '.join(headers)} |",
        f"| {' | '.join('---' for _ in headers)} |",
    ]
    for row in rows[1:]:
        lines.append(f"| {' | '.join(cells(row))} |")
    return "\n" + "\n".join(lines) + "\n"


def clean_html(html: str) -> str:
    """Drop scripts, styles and comments."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.find_all(["script", "style"]):
        element.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    return str(soup)


def html_to_text(html: str) -> str:
    return BeautifulSoup(html, "html.parser").get_text()


def extract_metadata_from_html(html: str) -> Dict[str, str]:
    """Map meta tag names/properties to their content."""
    metadata: Dict[str, str] = {}
    for meta in BeautifulSoup(html, "html.parser").find_all("meta"):
        name = meta.get("name") or meta.get("property")
        content = meta.get("content")
        if name and content:
            metadata[name] = content
    return metadata


def _base_converter(rules: RuleSet) -> html2text.HTML2Text:
    converter = html2text.HTML2Text()
    converter.body_width = 0
    converter.ignore_links = False
    converter.ignore_images = False
    converter.ignore_tables = False
    converter.ul_item_mark = rules.bullet_list_marker
    converter.emphasis_mark = rules.em_delimiter[0]
    converter.strong_mark = rules.strong_delimiter
    return converter


def to_markdown(html: str, rules: RuleSet = DEFAULT_RULES) -> str:
    if not html or not html.strip():
        return ""

    soup = BeautifulSoup(html, "html.parser")
    placeholders = _Placeholders(soup)

    if rules.preserve_code_formatting:
        for pre in soup.find_all("pre"):
            if rules.preserve_table_format and pre.find_parent(["td", "th"]) is not None:
                placeholders.inline(pre, f"`{' '.join(pre.get_text().split())}`")
            else:
                placeholders.block(pre, render_code_block(pre))
        for code in soup.find_all("code"):
            placeholders.inline(code, f"`{code.get_text()}`")

    for img in soup.find_all("img"):
        placeholders.inline(img, render_image(img, rules.preserve_image_size))

    if rules.preserve_table_format:
        # Innermost tables first so an outer table sees its nested ones as text.
        for table in reversed(soup.find_all("table")):
            rendered = render_table(table)
            if rendered is not None:
                placeholders.block(table, rendered)

    markdown = _base_converter(rules).handle(str(soup))
    markdown = placeholders.restore(markdown)
    return re.sub(r"\n{3,}", "\n\n", markdown).strip()


def clean_html_to_markdown(html: str, rules: RuleSet = DEFAULT_RULES) -> str:
    return to_markdown(clean_html(html), rules)
