"""Receipt documents.

A receipt is rendered only from what the donation row stored at creation and
confirmation time, and the PDF is written in reportlab's invariant mode (fixed
creation date and document id), so rendering the same donation twice yields
the same bytes.
"""
from io import BytesIO

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.utils import timezone
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from .models import Donation, Receipt

TITLE = "Gurudev Ashram"


def receipt_context(donation) -> dict:
    # cash may be recorded after the fact; its receipt carries the payment date
    paid_at = donation.created_at if donation.payment_method == Donation.CASH else donation.confirmed_at
    return {
        "receipt_number": donation.receipt_number,
        "issued_on": timezone.localtime(paid_at).date(),
        "donor_name": donation.donor_name,
        "donor_mobile": donation.donor_mobile,
        "donor_email": donation.donor_email,
        "address": donation.full_address,
        "id_type": donation.id_type,
        "id_number": donation.id_number,
        "cause": donation.donation_head_name,
        "amount": donation.amount,
        "payment_method": donation.get_payment_method_display(),
        "payment_ref": donation.gateway_payment_id,
        "collector_name": donation.collector_name,
    }


def _rows(ctx):
    rows = [
        ("Receipt No", ctx["receipt_number"]),
        ("Date", ctx["issued_on"].strftime("%d %b %Y")),
        ("Donor Name", ctx["donor_name"]),
        ("Mobile", ctx["donor_mobile"]),
    ]
    if ctx["donor_email"]:
        rows.append(("Email", ctx["donor_email"]))
    rows += [
        ("Address", ctx["address"] or "-"),
        (ctx["id_type"], ctx["id_number"]),
        ("Donation Head", ctx["cause"]),
        ("Amount", f"Rs. {ctx['amount']}"),
        ("Payment Method", ctx["payment_method"]),
        ("Payment Reference", ctx["payment_ref"]),
    ]
    if ctx["collector_name"]:
        rows.append(("Referred by", ctx["collector_name"]))
    return rows


def render_receipt(donation) -> bytes:
    ctx = receipt_context(donation)
    buf = BytesIO()
    pdf = canvas.Canvas(buf, pagesize=A4, invariant=1, pageCompression=0)
    pdf.setTitle(f"Donation Receipt {ctx['receipt_number']}")
    pdf.setAuthor(TITLE)

    width, height = A4
    y = height - 30 * mm
    pdf.setFont("Helvetica-Bold", 18)
    pdf.drawCentredString(width / 2, y, f"{TITLE}: Donation Receipt")
    y -= 15 * mm

    for label, value in _rows(ctx):
        pdf.setFont("Helvetica", 11)
        pdf.drawString(25 * mm, y, str(label))
        pdf.setFont("Helvetica-Bold", 11)
        pdf.drawString(80 * mm, y, str(value))
        y -= 8 * mm

    pdf.setFont("Helvetica-Oblique", 11)
    pdf.drawCentredString(width / 2, y - 10 * mm, "Thank you for your generous contribution.")
    pdf.showPage()
    pdf.save()
    return buf.getvalue()


def receipt_filename(donation) -> str:
    return f"receipt-{donation.receipt_number}.pdf"


def store_receipt(receipt: Receipt) -> str:
    """Write the rendered receipt to storage once and remember where."""
    if receipt.file_path and default_storage.exists(receipt.file_path):
        return receipt.file_path
    donation = receipt.donation
    path = default_storage.save(f"receipts/{receipt_filename(donation)}", ContentFile(render_receipt(donation)))
    Receipt.objects.filter(pk=receipt.pk).update(file_path=path)
    receipt.file_path = path
    return path


def receipt_url(receipt: Receipt | None) -> str | None:
    if receipt is None or not receipt.file_path:
        return None
    return default_storage.url(receipt.file_path)
