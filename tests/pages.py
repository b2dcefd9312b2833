"""HTML documents shared by the test modules."""

PRICE_TABLE = (
    "<html><head><title>Price list</title></head><body>"
    '<table id="prices">'
    "<thead><tr><th>Name</th><th>Price</th></tr></thead>"
    "<tbody>"
    "<tr><td>Widget</td><td>$9.99</td></tr>"
    "<tr><td>Gadget</td><td>$19.99</td></tr>"
    "</tbody>"
    "</table>"
    "</body></html>"
)


def _card(n: int) -> str:
    return (
        '<div class="card">'
        f'<a href="/p/{n}"><img src="/img/{n}.png" alt="Item {n}"></a>'
        f"<h3>Item number {n}</h3>"
        f'<span class="price">${n}0.00</span>'
        "</div>"
    )


PRODUCT_GRID = (
    "<html><head><title>Shop</title></head><body>"
    '<div class="product-grid" style="display:flex">'
    + "".join(_card(n) for n in range(1, 7))
    + "</div>"
    "</body></html>"
)

PLAIN_GRID = (
    "<html><body>"
    '<div class="grid" style="display:flex">'
    + "".join(f'<div class="entry"><h3>Entry {n}</h3><p>Text {n}</p></div>' for n in range(1, 7))
    + "</div>"
    "</body></html>"
)

LINK_LIST = (
    "<html><head><title>Links</title></head><body>"
    '<ul class="items">'
    '<li><a href="/a" title="First">Alpha</a></li>'
    '<li><a href="/b">Bravo</a></li>'
    '<li><a href="/c">Charlie</a></li>'
    '<li><a href="/d">Delta</a></li>'
    '<li><a href="/e">Echo</a></li>'
    "</ul>"
    "</body></html>"
)

DIV_TABLE = (
    "<html><body>"
    '<div class="data-rows">'
    '<div class="row"><span>City</span><span>Country</span><span>Population</span></div>'
    '<div class="row"><span>Oslo</span><span>Norway</span><span>700000</span></div>'
    '<div class="row"><span>Bergen</span><span>Norway</span><span>285000</span></div>'
    '<div class="row"><span>Lund</span><span>Sweden</span><span>94000</span></div>'
    '<div class="row"><span>Aarhus</span><span>Denmark</span><span></span></div>'
    "</div>"
    "</body></html>"
)
