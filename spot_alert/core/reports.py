"""
Downloadable incident report.

Renders the most recent alerts as a single-page PDF with fpdf2.
"""

from typing import Iterable

from fpdf import FPDF

from spot_alert.storage.models import AlertRecord

REPORT_TITLE = "SpotAlert Incident Report"
REPORT_FOOTER = "Generated automatically by SpotAlert."


def build_incident_report(records: Iterable[AlertRecord], compress: bool = False) -> bytes:
    """Build the incident report PDF.

    Args:
        records: Alerts to list, in display order
        compress: Deflate page streams

    Returns:
        Raw PDF bytes
    """
    pdf = FPDF()
    pdf.set_compression(compress)
    pdf.set_auto_page_break(auto=True, margin=18)
    pdf.add_page()

    pdf.set_font("Helvetica", "B", 18)
    pdf.cell(0, 12, REPORT_TITLE, align="C", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(6)

    pdf.set_font("Helvetica", "", 12)
    for i, record in enumerate(records, start=1):
        # Core fonts are latin-1 only
        line = f"{i}. {record.timestamp.isoformat()} - {record.alert_type} - key: {record.image_key}"
        line = line.encode("latin-1", "replace").decode("latin-1")
        pdf.multi_cell(0, 7, line, align="L", new_x="LMARGIN", new_y="NEXT")

    pdf.ln(6)
    pdf.set_font("Helvetica", "I", 10)
    pdf.cell(0, 6, REPORT_FOOTER, new_x="LMARGIN", new_y="NEXT")

    return bytes(pdf.output())
