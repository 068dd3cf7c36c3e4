"""Parsed page snapshot used by the extraction engine."""

from dataclasses import dataclass, field

from selectolax.parser import HTMLParser, Node

from catalog_crawler.extract.selectors import LightDomScope, node_text


def node_key(node: Node) -> int:
    """Identity of an element inside one parsed document."""
    return node.mem_id


@dataclass
class PageDocument:
    """One page's DOM, parsed once per page view."""

    html: str
    url: str
    title: str = ""
    tree: HTMLParser = field(init=False, repr=False)

    def __post_init__(self):
        self.tree = HTMLParser(self.html)
        if not self.title:
            title_node = self.tree.css_first("title")
            if title_node is not None:
                self.title = node_text(title_node)

    @classmethod
    def from_html(cls, html: str, url: str, title: str = "") -> "PageDocument":
        return cls(html=html, url=url, title=title)

    def scope(self) -> LightDomScope:
        """Document-wide query scope."""
        return LightDomScope(self.tree, self.url)

    def element_scope(self, node: Node) -> LightDomScope:
        """Query scope rooted at one element."""
        return LightDomScope(node, self.url)
