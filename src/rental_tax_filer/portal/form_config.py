"""
Labels, selectors and URL patterns of the short-term-letting declaration portal.

Everything the automation matches on lives here, so a portal redesign is a
config change. The portal is bilingual; Greek is the primary label and English
the fallback.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BilingualText:
    greek: str
    english: str

    def both(self) -> tuple[str, str]:
        return (self.greek, self.english)


@dataclass(frozen=True)
class FormField:
    name: str
    label: BilingualText
    kind: str  # text | date | number | select
    required: bool = True
    selectors: tuple[str, ...] = ()

    def targets(self) -> tuple[str, ...]:
        """Direct-addressing targets in preference order: explicit selectors, then labels."""
        return self.selectors + tuple(f"label:{t}" for t in self.label.both())

    def instruction(self, action: str, value: object | None = None) -> str:
        primary, fallback = self.label.both()
        if action == "fill":
            return f"Fill the field labeled '{primary}' (or '{fallback}') with value: {value}"
        if action == "select":
            return f"Select '{value}' from the '{primary}' (or '{fallback}') dropdown"
        return f"Click on '{primary}' or '{fallback}'"


@dataclass(frozen=True)
class DeclarationFormConfig:
    arrival_date: FormField
    departure_date: FormField
    total_rent: FormField
    payment_method: FormField
    platform: FormField
    # A form version without these cannot declare a cancellation.
    cancellation_amount: FormField | None = None
    cancellation_date: FormField | None = None

    @property
    def supports_cancellation(self) -> bool:
        return self.cancellation_amount is not None and self.cancellation_date is not None


DECLARATION_FORM = DeclarationFormConfig(
    arrival_date=FormField(
        name="Arrival Date",
        label=BilingualText("Ημερομηνία Άφιξης", "Arrival Date"),
        kind="date",
    ),
    departure_date=FormField(
        name="Departure Date",
        label=BilingualText("Ημερομηνία Αναχώρησης", "Departure Date"),
        kind="date",
    ),
    total_rent=FormField(
        name="Total Rent",
        label=BilingualText("Συνολικό Συμφωνηθέν Μίσθωμα", "Total Agreed Rent"),
        kind="number",
    ),
    payment_method=FormField(
        name="Payment Method",
        label=BilingualText("Τρόπος Πληρωμής", "Payment Method"),
        kind="select",
    ),
    platform=FormField(
        name="Platform",
        label=BilingualText("Ηλεκτρονική Πλατφόρμα", "Electronic Platform"),
        kind="select",
    ),
    cancellation_amount=FormField(
        name="Cancellation Amount",
        label=BilingualText("Συνολικό Ποσό Ακύρωσης", "Total Cancellation Amount"),
        kind="number",
        required=False,
    ),
    cancellation_date=FormField(
        name="Cancellation Date",
        label=BilingualText("Ημερομηνία Ακύρωσης", "Cancellation Date"),
        kind="date",
        required=False,
    ),
)

PAYMENT_ELECTRONIC_PLATFORM = BilingualText("Ηλεκτρονική Πλατφόρμα", "Electronic Platform")
PLATFORM_AIRBNB = BilingualText("Airbnb", "Airbnb")


@dataclass(frozen=True)
class PortalMessages:
    no_results: BilingualText = BilingualText("Δεν βρέθηκαν αποτελέσματα", "No results found")
    maintenance: BilingualText = BilingualText("Συντήρηση", "Maintenance")
    session_expired: BilingualText = BilingualText("Η συνεδρία έληξε", "Session expired")
    successful_submission: BilingualText = BilingualText(
        "Επιτυχής καταχώρηση", "Successful submission"
    )


@dataclass(frozen=True)
class UrlPatterns:
    login: tuple[str, ...] = ("login.gsis.gr", "oauth2")
    user_info: tuple[str, ...] = ("userInfo",)
    property_registry: tuple[str, ...] = ("short_term_letting",)
    declarations: tuple[str, ...] = ("declarations", "dilosi")
    new_declaration: tuple[str, ...] = ("newDeclaration", "nea-dilosi")
    session_expired: tuple[str, ...] = ("osso_logout", "expired")


@dataclass(frozen=True)
class PortalSelectors:
    """
    Centralized selectors for the portal.

    The portal UI can change; updating selectors in one class reduces risk.
    """

    property_table: str = "table, .property-list, [class*='registry']"
    property_rows: str = "table tbody tr, .property-row"
    declarations_link: str = "a:has-text('Δηλώσεις'), button:has-text('Δηλώσεις')"

    user_info_inputs: str = "input[type='text']"
    user_info_save: str = "button:has-text('Αποθήκευση'), button:has-text('Save')"
    user_info_continue: str = "button:has-text('ΣΥΝΕΧΕΙΑ'), a:has-text('ΣΥΝΕΧΕΙΑ')"

    new_declaration: str = (
        "button:has-text('Νέα Δήλωση'), button:has-text('New Declaration'), "
        "a:has-text('Νέα Δήλωση')"
    )

    # Final submit. Never reached through the intent executor.
    final_submit: str = "button:has-text('Υποβολή'), button:has-text('Submit')"
    # Leaves the form without filing (dry run).
    form_back: str = "button:has-text('Επιστροφή'), a:has-text('Επιστροφή'), button:has-text('Back')"

    error_banner: str = ".error, .alert-danger, [class*='error']"


@dataclass(frozen=True)
class PortalLayout:
    """Everything the detector, state machine and form filler match against."""

    urls: UrlPatterns = field(default_factory=UrlPatterns)
    messages: PortalMessages = field(default_factory=PortalMessages)
    selectors: PortalSelectors = field(default_factory=PortalSelectors)
    form: DeclarationFormConfig = DECLARATION_FORM
    new_declaration_button: BilingualText = BilingualText("Νέα Δήλωση", "New Declaration")
    declarations_nav: BilingualText = BilingualText("Δηλώσεις", "Declarations")
    add_property_nav: BilingualText = BilingualText("Εισαγωγή Ακινήτου", "Add Property")


DEFAULT_LAYOUT = PortalLayout()
