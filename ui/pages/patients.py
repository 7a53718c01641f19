# patients/ui/pages/patients.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

import flet as ft

from core.bmi import bmi_status
from datetime_utils import calculate_age, parse_date_input
from services.records import PatientListing
from services.sync_scheduler import run_blocking


class PatientsPage:
    def __init__(self, app):
        self.app = app
        self.filter_date: Optional[date] = None

        self.date_tf = ft.TextField(
            label="Visit date",
            hint_text="dd/mm/yyyy",
            width=180,
            on_submit=self._on_filter,
        )
        self.filter_btn = ft.IconButton(icon=ft.Icons.FILTER_ALT, tooltip="Filter", on_click=self._on_filter)
        self.clear_btn = ft.IconButton(icon=ft.Icons.CLEAR, tooltip="Show all", on_click=self._on_clear)
        self.empty_text = ft.Text("No patients yet", italic=True, visible=False)

        self.table = ft.DataTable(
            columns=[
                ft.DataColumn(ft.Text("Patient ID")),
                ft.DataColumn(ft.Text("Name")),
                ft.DataColumn(ft.Text("Age"), numeric=True),
                ft.DataColumn(ft.Text("Last visit")),
                ft.DataColumn(ft.Text("BMI status")),
            ],
            rows=[],
        )

        content = ft.Column(
            controls=[
                ft.Text("Patients", size=24, weight=ft.FontWeight.BOLD),
                ft.Row([self.date_tf, self.filter_btn, self.clear_btn], spacing=8),
                self.empty_text,
                ft.Column([self.table], scroll=ft.ScrollMode.AUTO, expand=True),
            ],
            expand=True,
            spacing=16,
        )
        self.view = ft.Container(content=content, expand=True, padding=20)

    def _row(self, item: PatientListing) -> ft.DataRow:
        patient = item.patient
        age = calculate_age(patient.dob)
        status = bmi_status(item.last_bmi) if item.last_bmi is not None else "-"
        last_visit = item.last_visit_date.strftime("%d/%m/%Y") if item.last_visit_date else "-"
        return ft.DataRow(
            cells=[
                ft.DataCell(ft.Text(patient.patient_id)),
                ft.DataCell(ft.Text(patient.full_name)),
                ft.DataCell(ft.Text("-" if age is None else str(age))),
                ft.DataCell(ft.Text(last_visit)),
                ft.DataCell(ft.Text(status)),
            ],
            on_select_changed=lambda e, p=patient: self.app.open_visit(p),
        )

    async def load(self):
        listings: List[PatientListing] = await run_blocking(self.app.records.list_patients, self.filter_date)
        self.table.rows = [self._row(item) for item in listings]
        self.empty_text.visible = not listings
        self.app.page.update()

    async def _on_filter(self, _):
        raw = (self.date_tf.value or "").strip()
        parsed = parse_date_input(raw) if raw else None
        if raw and parsed is None:
            self.date_tf.error_text = "Invalid date"
            self.app.page.update()
            return
        self.date_tf.error_text = None
        self.filter_date = parsed
        await self.load()

    async def _on_clear(self, _):
        self.date_tf.value = ""
        self.date_tf.error_text = None
        self.filter_date = None
        await self.load()
