import json
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from dentcare.models.treatment_plan import TreatmentPlan


def render_treatment_plan(plan: TreatmentPlan) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter)
    styles = getSampleStyleSheet()
    story = []
    generated = json.loads(plan.ai_generated_plan)

    # Title
    title_style = ParagraphStyle(
        'CustomTitle',
        parent=styles['Heading1'],
        fontSize=24,
        spaceAfter=30
    )
    story.append(Paragraph("Dental Treatment Plan", title_style))

    # Clinic and patient
    story.append(Paragraph("Clinic:", styles['Heading2']))
    story.append(Paragraph(escape(plan.clinic.name), styles['Normal']))
    story.append(Paragraph(escape(plan.clinic.address), styles['Normal']))
    story.append(Spacer(1, 20))

    story.append(Paragraph("Patient:", styles['Heading2']))
    story.append(Paragraph(escape(plan.patient.full_name), styles['Normal']))
    story.append(Spacer(1, 20))

    # Diagnosis
    story.append(Paragraph("Diagnosis:", styles['Heading2']))
    story.append(Paragraph(escape(plan.diagnosis), styles['Normal']))
    story.append(Paragraph(f"Symptoms: {escape(', '.join(json.loads(plan.symptoms)))}", styles['Normal']))
    story.append(Paragraph(f"Urgency: {plan.urgency.value.title()}", styles['Normal']))
    story.append(Spacer(1, 20))

    # Phases
    story.append(Paragraph("Treatment Phases:", styles['Heading2']))
    phase_data = [["Phase", "Title", "Duration", "Priority"]]
    for phase in generated.get("treatmentPhases", []):
        phase_data.append([
            str(phase["phase"]),
            phase["title"],
            phase["estimatedDuration"],
            phase["priority"].title()
        ])

    phase_table = Table(phase_data)
    phase_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, 0), 12),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('BACKGROUND', (0, 1), (-1, -1), colors.beige),
        ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
        ('FONTSIZE', (0, 1), (-1, -1), 10),
        ('GRID', (0, 0), (-1, -1), 1, colors.black)
    ]))
    story.append(phase_table)
    story.append(Spacer(1, 20))

    cost = generated.get("estimatedCost")
    if cost:
        story.append(Paragraph("Estimated Cost:", styles['Heading2']))
        story.append(Paragraph(
            f"{cost['currency']} {cost['minimum']:,.2f} - {cost['maximum']:,.2f}", styles['Normal']
        ))
        story.append(Spacer(1, 20))

    for key, heading in (
        ("followUpSchedule", "Follow-up Schedule:"),
        ("homeCareTips", "Home Care:"),
        ("warningSignsToWatch", "Warning Signs:"),
    ):
        items = generated.get(key) or []
        if items:
            story.append(Paragraph(heading, styles['Heading2']))
            for item in items:
                story.append(Paragraph(f"• {escape(item)}", styles['Normal']))
            story.append(Spacer(1, 12))

    status = "Approved" if plan.approved_at else "Draft - pending dentist review"
    story.append(Paragraph(f"Status: {status}", styles['Normal']))
    story.append(Paragraph(f"Date: {plan.created_at.strftime('%Y-%m-%d %H:%M')}", styles['Normal']))

    doc.build(story)
    return buffer.getvalue()
