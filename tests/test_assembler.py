"""Tests for field extraction and record assembly."""

from conftest import listing_page, product_card

from catalog_crawler.extract.assembler import assemble_records
from catalog_crawler.extract.document import PageDocument
from catalog_crawler.extract.records import ErrorRecord, ProductRecord
from catalog_crawler.extract.selectors import SelectorCatalog

URL = "https://shop.example.com/kadin-canta"


def _document(html: str) -> PageDocument:
    return PageDocument.from_html(html, URL)


def test_assembles_one_record_per_card():
    cards = "".join(product_card(i) for i in range(1, 4))
    records = assemble_records(_document(listing_page(cards)), SelectorCatalog())

    assert len(records) == 3
    first = records[0]
    assert isinstance(first, ProductRecord)
    assert first.title == "Bag 1"
    assert first.link == "https://shop.example.com/p/bag-1"
    assert first.primary_image == "https://cdn.example.com/images/bag-1.jpg"
    assert first.prices[0].value == "1.449,90 TL"
    assert first.prices[0].selector == ".price"
    assert first.page_title == "Kadın Çanta"
    assert first.page_url == URL
    assert first.matched_selectors["title"] == ".product-name a"
    assert first.matched_page_selector


def test_no_product_items_is_empty_not_error():
    html = "<html><head><title>About</title></head><body><p>About us</p></body></html>"
    assert assemble_records(_document(html), SelectorCatalog()) == []


def test_one_failing_item_does_not_drop_the_others():
    cards = []
    for i in range(1, 6):
        name = "" if i == 3 else f'<span class="name">Item {i}</span>'
        cards.append(f'<div class="card"><a href="/p/{i}">{name}</a></div>')
    catalog = SelectorCatalog(
        product_item=[".card"],
        title=["lambda el: text(el.css_first('.name'))"],
        link=["a"],
    )

    records = assemble_records(_document(listing_page("".join(cards))), catalog)

    assert len(records) == 5
    assert isinstance(records[2], ErrorRecord)
    assert records[2].error is True
    assert 'href="/p/3"' in records[2].content
    assert records[2].url == URL
    for index in (0, 1, 3, 4):
        assert isinstance(records[index], ProductRecord)
        assert records[index].title == f"Item {index + 1}"


def test_title_link_wins_over_link_selector():
    html = listing_page("""
    <div class="tile">
      <h3 class="name"><a href="/p/title-link">Bag</a></h3>
      <a class="product-link" href="/p/other-variant">view</a>
    </div>
    """)
    catalog = SelectorCatalog(product_item=[".tile"], title=[".name a"], link=[".product-link"])
    record = assemble_records(_document(html), catalog)[0]
    assert record.link == "https://shop.example.com/p/title-link"


def test_anchor_container_is_the_last_resort():
    html = listing_page("""
    <a class="tile" href="/p/wrapper"><h3 class="name">Bag</h3></a>
    """)
    catalog = SelectorCatalog(product_item=[".tile"], title=[".name"], link=[".product-link"])
    record = assemble_records(_document(html), catalog)[0]
    assert record.link == "https://shop.example.com/p/wrapper"


def test_link_selector_used_when_title_has_no_href():
    html = listing_page("""
    <div class="tile">
      <h3 class="name">Bag</h3>
      <a class="product-link" href="/p/bag">view</a>
    </div>
    """)
    catalog = SelectorCatalog(product_item=[".tile"], title=[".name"], link=[".product-link"])
    record = assemble_records(_document(html), catalog)[0]
    assert record.title == "Bag"
    assert record.link == "https://shop.example.com/p/bag"


def test_images_union_attributes_and_background():
    html = listing_page("""
    <div class="tile">
      <img src="data:image/gif;base64,R0lGOD" data-src="/media/a.jpg">
      <img srcset="https://cdn.example.com/s.jpg 320w, https://cdn.example.com/m.jpg 640w, https://cdn.example.com/l.jpg 1280w">
      <div class="hero" style="background-image: url('https://cdn.example.com/bg.webp')"></div>
      <img src="https://cdn.example.com/bg.webp">
    </div>
    """)
    catalog = SelectorCatalog(
        product_item=[".tile"],
        image=["img", ".hero"],
        image_attributes=["src", "data-src", "srcset"],
    )
    record = assemble_records(_document(html), catalog)[0]
    assert record.images == [
        "https://shop.example.com/media/a.jpg",
        "https://cdn.example.com/m.jpg",
        "https://cdn.example.com/bg.webp",
    ]
    assert record.primary_image == "https://shop.example.com/media/a.jpg"


def test_multiple_prices_and_availability():
    html = listing_page("""
    <div class="tile">
      <span class="old-price">2.000,00 TL</span>
      <span class="sale-price">1.500,00 TL</span>
      <span class="sold-out">Tükendi</span>
    </div>
    """)
    catalog = SelectorCatalog(product_item=[".tile"])
    record = assemble_records(_document(html), catalog)[0]
    values = [p.value for p in record.prices]
    assert values == ["1.500,00 TL", "2.000,00 TL"]
    assert record.product_not_in_stock is True
    assert record.matched_selectors["notAvailable"] == ".sold-out"


def test_videos_collected_across_selectors():
    html = listing_page("""
    <div class="tile">
      <video src="https://cdn.example.com/v/clip.mp4"></video>
      <iframe src="https://www.youtube.com/embed/abc"></iframe>
    </div>
    """)
    catalog = SelectorCatalog(product_item=[".tile"])
    record = assemble_records(_document(html), catalog)[0]
    assert record.videos == ["https://cdn.example.com/v/clip.mp4", "https://www.youtube.com/embed/abc"]
