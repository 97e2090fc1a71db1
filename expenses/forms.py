from datetime import date
from decimal import Decimal

from flask_wtf import FlaskForm
from wtforms import (
    DateField,
    DecimalField,
    FieldList,
    FormField,
    PasswordField,
    SelectField,
    StringField,
    SubmitField,
    TextAreaField,
)
from wtforms.validators import (
    DataRequired,
    Email,
    InputRequired,
    Length,
    NumberRange,
    Optional,
    ValidationError,
)

from expenses.services.purchases import compute_subtotal
from expenses.services.teams import team_choices

UNITS_OF_MEASURE = (
    "unidade",
    "kg",
    "g",
    "litro",
    "ml",
    "caixa",
    "pacote",
    "metro",
    "cm",
    "outro",
)
UNIT_CHOICES = [(unit, unit) for unit in UNITS_OF_MEASURE]


class LoginForm(FlaskForm):
    email = StringField("E-mail", validators=[DataRequired(), Email()])
    password = PasswordField("Senha", validators=[DataRequired()])
    submit = SubmitField("Entrar")


class PurchaseItemForm(FlaskForm):
    """One line of the purchase registration form.

    Nested inside a ``FieldList`` so CSRF is handled by the parent form.
    """

    class Meta:
        csrf = False

    product_name = StringField(
        "Produto", validators=[DataRequired(), Length(max=200)]
    )
    unit_of_measure = SelectField(
        "Unidade", choices=UNIT_CHOICES, default="unidade"
    )
    quantity = DecimalField(
        "Quantidade",
        places=3,
        validators=[InputRequired(), NumberRange(min=0.001)],
    )
    unit_price = DecimalField(
        "Preço Unitário",
        places=2,
        validators=[InputRequired(), NumberRange(min=0.01)],
    )
    notes = StringField("Observações", validators=[Optional(), Length(max=500)])
    remove = SubmitField("Remover")

    @property
    def subtotal(self):
        """Half-up rounded ``quantity * unit_price``, or ``None`` while incomplete."""
        quantity = self.quantity.data
        price = self.unit_price.data
        if quantity is None or price is None:
            return None
        return compute_subtotal(quantity, price)


class PurchaseForm(FlaskForm):
    purchase_date = DateField(
        "Data da Compra", validators=[DataRequired()], default=date.today
    )
    team = SelectField("Equipe", coerce=int, validators=[DataRequired()])
    location_name = StringField(
        "Local da Compra", validators=[DataRequired(), Length(max=200)]
    )
    notes = TextAreaField("Observações", validators=[Optional()])
    items = FieldList(FormField(PurchaseItemForm), min_entries=1)
    add_item = SubmitField("Adicionar Item")
    submit = SubmitField("Registrar Compra")

    def __init__(self, *args, **kwargs):
        super(PurchaseForm, self).__init__(*args, **kwargs)
        self.team.choices = team_choices()

    def validate_items(self, field):
        if not field.entries:
            raise ValidationError("Adicione pelo menos um item.")

    @property
    def running_total(self):
        """Sum of the row subtotals over the filled-in rows."""
        subtotals = (entry.form.subtotal for entry in self.items)
        return sum((value for value in subtotals if value is not None), Decimal("0"))


class PurchaseFilterForm(FlaskForm):
    """Filters shared by the purchase list and the report view.

    Submitted with GET, so CSRF is disabled.
    """

    class Meta:
        csrf = False

    team_id = SelectField("Equipe", validators=[Optional()], validate_choice=False)
    product = StringField("Produto", validators=[Optional()])
    location = StringField("Local", validators=[Optional()])
    start_date = DateField("Data Inicial", validators=[Optional()])
    end_date = DateField("Data Final", validators=[Optional()])
    submit = SubmitField("Filtrar")

    def __init__(self, *args, **kwargs):
        super(PurchaseFilterForm, self).__init__(*args, **kwargs)
        self.team_id.choices = [("all", "Todas as equipes")] + [
            (str(team_id), name) for team_id, name in team_choices()
        ]


class ReportFilterForm(PurchaseFilterForm):
    title = StringField("Título do Relatório", validators=[Optional(), Length(max=120)])
