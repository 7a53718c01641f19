# patients/ui/pages/visit.py
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

import flet as ft
from sqlalchemy.exc import SQLAlchemyError

from core.bmi import OVERWEIGHT_ASSESSMENT, format_bmi_summary
from datetime_utils import parse_date_input
from models.assessment import GENERAL_HEALTH_CHOICES
from models.patient import Patient
from services.patient_service import ValidationError
from services.sync_scheduler import run_blocking
from ui.dialogs import save_failure_message, show_snack, write_outcome_message

logger = logging.getLogger("patients.ui")


def _parse_float(value: Optional[str]) -> Optional[float]:
    try:
        return float((value or "").replace(",", ".").strip())
    except ValueError:
        return None


class VisitPage:
    """Vitals first; the BMI then decides which assessment form is shown."""

    def __init__(self, app):
        self.app = app
        self.patient: Optional[Patient] = None
        self.visit_date: Optional[date] = None
        self.assessment_kind: Optional[str] = None
        self._patients: dict[str, Patient] = {}

        self.patient_dd = ft.Dropdown(label="Patient", width=360, on_change=self._on_patient_changed)
        self.visit_date_tf = ft.TextField(
            label="Visit date",
            hint_text="dd/mm/yyyy",
            width=200,
            value=date.today().strftime("%d/%m/%Y"),
        )
        self.height_tf = ft.TextField(label="Height (cm)", width=160, keyboard_type=ft.KeyboardType.NUMBER)
        self.weight_tf = ft.TextField(label="Weight (kg)", width=160, keyboard_type=ft.KeyboardType.NUMBER)
        self.bmi_text = ft.Text("BMI: -", size=16)
        self.save_vitals_btn = ft.ElevatedButton("Save vitals", icon=ft.Icons.MONITOR_WEIGHT, on_click=self.save_vitals)

        self.health_group = ft.RadioGroup(
            content=ft.Row([ft.Radio(value=v, label=v) for v in GENERAL_HEALTH_CHOICES])
        )
        self.question_cb = ft.Checkbox(label="")
        self.comments_tf = ft.TextField(label="Comments", multiline=True, min_lines=2, width=500)
        self.save_assessment_btn = ft.ElevatedButton(
            "Save assessment", icon=ft.Icons.ASSIGNMENT_TURNED_IN, on_click=self.save_assessment
        )
        self.assessment_title = ft.Text("", size=18, weight=ft.FontWeight.W_600)
        self.assessment_box = ft.Column(
            controls=[
                self.assessment_title,
                ft.Text("General health"),
                self.health_group,
                self.question_cb,
                self.comments_tf,
                self.save_assessment_btn,
            ],
            spacing=12,
            visible=False,
        )

        content = ft.Column(
            controls=[
                ft.Text("Visit", size=24, weight=ft.FontWeight.BOLD),
                ft.Row([self.patient_dd, self.visit_date_tf], spacing=12),
                ft.Row([self.height_tf, self.weight_tf, self.bmi_text], spacing=12),
                self.save_vitals_btn,
                ft.Divider(),
                self.assessment_box,
            ],
            spacing=16,
            scroll=ft.ScrollMode.AUTO,
        )
        self.view = ft.Container(content=content, expand=True, padding=20)

    # ---------- loading ----------
    async def load(self, patient: Optional[Patient] = None):
        listings = await run_blocking(self.app.records.list_patients)
        self.patient_dd.options = [
            ft.dropdown.Option(str(item.patient.id), f"{item.patient.full_name} ({item.patient.patient_id})")
            for item in listings
        ]
        self._patients = {str(item.patient.id): item.patient for item in listings}
        if patient is not None:
            self.patient = patient
            self.patient_dd.value = str(patient.id)
        self.app.page.update()

    def _on_patient_changed(self, e):
        self.patient = self._patients.get(e.control.value)
        self._hide_assessment()
        self.app.page.update()

    def _hide_assessment(self):
        self.assessment_kind = None
        self.assessment_box.visible = False
        self.bmi_text.value = "BMI: -"

    def _show_assessment(self, kind: str):
        self.assessment_kind = kind
        self.health_group.value = None
        self.question_cb.value = False
        self.comments_tf.value = ""
        if kind == OVERWEIGHT_ASSESSMENT:
            self.assessment_title.value = "Overweight assessment"
            self.question_cb.label = "Are you currently using any drugs?"
        else:
            self.assessment_title.value = "General assessment"
            self.question_cb.label = "Have you ever been on a diet to lose weight?"
        self.assessment_box.visible = True

    # ---------- saving ----------
    async def save_vitals(self, _):
        if self.patient is None:
            show_snack(self.app.page, "Select a patient first", error=True)
            return
        visit_date = parse_date_input(self.visit_date_tf.value)
        if visit_date is None:
            self.visit_date_tf.error_text = "Invalid date"
            self.app.page.update()
            return
        self.visit_date_tf.error_text = None
        height = _parse_float(self.height_tf.value)
        weight = _parse_float(self.weight_tf.value)
        if height is None or weight is None:
            show_snack(self.app.page, "Height and weight must be numbers", error=True)
            return

        try:
            result = await run_blocking(self.app.patients.save_vitals, self.patient.id, visit_date, height, weight)
        except ValidationError as exc:
            show_snack(self.app.page, str(exc), error=True)
            return
        except SQLAlchemyError as exc:
            logger.exception("Could not store vitals")
            show_snack(self.app.page, save_failure_message("vitals", exc), error=True)
            return

        self.visit_date = visit_date
        self.bmi_text.value = f"BMI: {format_bmi_summary(result.record.bmi)}"
        self._show_assessment(result.next_assessment)
        show_snack(self.app.page, write_outcome_message(result, "Vitals saved"))
        self.app.after_write()

    async def save_assessment(self, _):
        if self.patient is None or self.visit_date is None or self.assessment_kind is None:
            return
        if self.assessment_kind == OVERWEIGHT_ASSESSMENT:
            save = self.app.patients.save_overweight_assessment
        else:
            save = self.app.patients.save_general_assessment
        try:
            result = await run_blocking(
                save,
                self.patient.id,
                self.visit_date,
                self.health_group.value or "",
                bool(self.question_cb.value),
                self.comments_tf.value or "",
            )
        except ValidationError as exc:
            show_snack(self.app.page, str(exc), error=True)
            return
        except SQLAlchemyError as exc:
            logger.exception("Could not store assessment")
            show_snack(self.app.page, save_failure_message("assessment", exc), error=True)
            return

        show_snack(self.app.page, write_outcome_message(result, "Assessment saved"))
        self.height_tf.value = ""
        self.weight_tf.value = ""
        self._hide_assessment()
        self.app.after_write()
        self.app.show_patients()
