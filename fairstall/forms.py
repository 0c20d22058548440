from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField, FileRequired, FileSize
from wtforms import BooleanField, DateField, DecimalField, IntegerField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional


class ApiForm(FlaskForm):
    """JSON API forms: the blueprint is CSRF-exempt, so the forms are too."""

    class Meta:
        csrf = False


# -------------------------
# Catalog
# -------------------------

class ProductTypeForm(ApiForm):
    name = StringField("Name", validators=[Optional(), Length(max=120)])
    default_price = DecimalField("Default price", name="defaultPrice", places=2, validators=[Optional()])
    unit_label = StringField("Unit", name="unitLabel", validators=[Optional(), Length(max=40)])
    pack_size = IntegerField("Pack size", name="packSize", validators=[Optional()])
    is_active = BooleanField("Active", name="isActive")


class SeriesForm(ApiForm):
    name = StringField("Name", validators=[Optional(), Length(max=120)])
    is_active = BooleanField("Active", name="isActive")


class FabricForm(ApiForm):
    name = StringField("Name", validators=[Optional(), Length(max=120)])
    series_id = StringField("Series", name="seriesId", validators=[Optional(), Length(max=80)])
    is_active = BooleanField("Active", name="isActive")


class FabricImageForm(ApiForm):
    image = FileField("Fabric photo", validators=[
        FileRequired("Choose an image"),
        FileAllowed(["jpg", "jpeg", "png", "webp"], "Only jpg/jpeg/png/webp"),
        FileSize(max_size=5 * 1024 * 1024, message="Max 5MB")
    ])


# -------------------------
# Cart / checkout
# -------------------------

class CartLineForm(ApiForm):
    product_type_id = StringField("Product", name="productTypeId", validators=[Optional(), Length(max=80)])
    qty = IntegerField("Quantity", validators=[Optional()])
    fabric_id = StringField("Fabric", name="fabricId", validators=[Optional(), Length(max=80)])
    unit_price = DecimalField("Unit price", name="unitPrice", places=2, validators=[Optional()])
    name = StringField("Name", validators=[Optional(), Length(max=120)])


class CheckoutForm(ApiForm):
    customer = StringField("Customer", validators=[Optional(), Length(max=120)])
    note = TextAreaField("Note", validators=[Optional(), Length(max=2000)])
    discount = DecimalField("Discount", places=2, validators=[Optional()])


# -------------------------
# Events / exports
# -------------------------

class EventStartForm(ApiForm):
    name = StringField("Event name", validators=[DataRequired(), Length(max=120)])
    date = DateField("Date", validators=[Optional()])
    location = StringField("Location", validators=[Optional(), Length(max=120)])


class SheetExportForm(ApiForm):
    sheet_id = StringField("Spreadsheet ID", name="sheetId", validators=[Optional(), Length(max=200)])
    sheet_name = StringField("Sheet tab", name="sheetName", validators=[Optional(), Length(max=100)])
