# patients/ui/pages/registration.py
from __future__ import annotations

import logging
from datetime import date

import flet as ft
from sqlalchemy.exc import SQLAlchemyError

from datetime_utils import parse_date_input
from services.patient_service import ValidationError
from services.sync_scheduler import run_blocking
from ui.dialogs import save_failure_message, show_snack, write_outcome_message

logger = logging.getLogger("patients.ui")


GENDERS = ("Male", "Female")


class RegistrationPage:
    def __init__(self, app):
        self.app = app

        self.patient_id_tf = ft.TextField(label="Patient ID", width=240, autofocus=True)
        self.reg_date_tf = ft.TextField(
            label="Registration date",
            hint_text="dd/mm/yyyy",
            width=200,
            value=date.today().strftime("%d/%m/%Y"),
        )
        self.first_name_tf = ft.TextField(label="First name", width=240)
        self.last_name_tf = ft.TextField(label="Last name", width=240)
        self.dob_tf = ft.TextField(label="Date of birth", hint_text="dd/mm/yyyy", width=200)
        self.gender_dd = ft.Dropdown(
            label="Gender",
            width=200,
            options=[ft.dropdown.Option(g) for g in GENDERS],
        )
        self.save_btn = ft.ElevatedButton("Save", icon=ft.Icons.SAVE, on_click=self.save)
        self.clear_btn = ft.TextButton("Clear", on_click=lambda e: self.reset())

        content = ft.Column(
            controls=[
                ft.Text("Register patient", size=24, weight=ft.FontWeight.BOLD),
                ft.Row([self.patient_id_tf, self.reg_date_tf], spacing=12),
                ft.Row([self.first_name_tf, self.last_name_tf], spacing=12),
                ft.Row([self.dob_tf, self.gender_dd], spacing=12),
                ft.Row([self.save_btn, self.clear_btn], spacing=12),
            ],
            spacing=16,
        )
        self.view = ft.Container(content=content, expand=True, padding=20)

    def reset(self):
        for tf in (self.patient_id_tf, self.first_name_tf, self.last_name_tf, self.dob_tf):
            tf.value = ""
            tf.error_text = None
        self.gender_dd.value = None
        self.reg_date_tf.value = date.today().strftime("%d/%m/%Y")
        self.app.page.update()

    async def save(self, _):
        reg_date = parse_date_input(self.reg_date_tf.value)
        dob = parse_date_input(self.dob_tf.value) if (self.dob_tf.value or "").strip() else None
        self.reg_date_tf.error_text = None if reg_date else "Invalid date"
        self.dob_tf.error_text = None if dob or not (self.dob_tf.value or "").strip() else "Invalid date"
        if self.reg_date_tf.error_text or self.dob_tf.error_text:
            self.app.page.update()
            return

        self.save_btn.disabled = True
        self.app.page.update()
        try:
            result = await run_blocking(
                self.app.patients.register_patient,
                self.patient_id_tf.value or "",
                self.first_name_tf.value or "",
                self.last_name_tf.value or "",
                reg_date,
                dob=dob,
                gender=self.gender_dd.value,
            )
        except ValidationError as exc:
            show_snack(self.app.page, str(exc), error=True)
            return
        except SQLAlchemyError as exc:
            logger.exception("Could not store patient")
            show_snack(self.app.page, save_failure_message("patient", exc), error=True)
            return
        finally:
            self.save_btn.disabled = False
            self.app.page.update()

        show_snack(self.app.page, write_outcome_message(result, "Patient registered"))
        self.app.after_write()
        self.app.open_visit(result.record)
        self.reset()
