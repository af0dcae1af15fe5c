from __future__ import annotations

from datetime import datetime

from jinja2 import Template

from app.db.models.wms.common import utcnow

# 4x6 tote label for Zebra printers
BIN_LABEL_TEMPLATE = Template(
    """^XA
^CI28
^FO50,30^A0N,50,50^FD{{ bin_number }}^FS
^FO50,100^A0N,30,30^FDOrder: {{ order_number }}^FS
^FO50,145^A0N,25,25^FD{{ item_count }} SKUs / {{ total_quantity }} units^FS
^FO50,200^BY3
^BCN,100,Y,N,N
^FD{{ barcode }}^FS
^FO50,340^A0N,20,20^FD{{ printed_at }}^FS
^XZ"""
)


def render_bin_label(*, bin_number: str, barcode: str, order_number: str, item_count: int, total_quantity: int, printed_at: datetime | None = None) -> str:
    return BIN_LABEL_TEMPLATE.render(
        bin_number=bin_number,
        barcode=barcode,
        order_number=order_number,
        item_count=item_count,
        total_quantity=total_quantity,
        printed_at=(printed_at or utcnow()).strftime("%Y-%m-%d %H:%M"),
    )
