from fairstall import db


class StoredBlob(db.Model):
    __tablename__ = "stored_blobs"

    key = db.Column(db.String(120), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        server_default=db.func.now(),
        onupdate=db.func.now(),
        nullable=False
    )

    def __repr__(self):
        return f"<StoredBlob {self.key} ({len(self.value or '')} chars)>"
