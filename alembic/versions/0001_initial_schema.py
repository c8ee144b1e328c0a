"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TYPE indexing_status AS ENUM ('INDEXING', 'INDEXED', 'FAILED');
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS site (
          id BIGSERIAL PRIMARY KEY,
          url TEXT UNIQUE NOT NULL,
          name TEXT NOT NULL,
          status indexing_status NOT NULL,
          status_time TIMESTAMPTZ NOT NULL DEFAULT now(),
          last_error TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_site_status ON site(status);
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS page (
          id BIGSERIAL PRIMARY KEY,
          site_id BIGINT NOT NULL REFERENCES site(id) ON DELETE CASCADE,
          path TEXT NOT NULL,
          code INT NOT NULL,
          content TEXT NOT NULL,
          UNIQUE (site_id, path)
        );
        CREATE INDEX IF NOT EXISTS idx_page_path ON page(path);
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS lemma (
          id BIGSERIAL PRIMARY KEY,
          site_id BIGINT NOT NULL REFERENCES site(id) ON DELETE CASCADE,
          lemma TEXT NOT NULL,
          frequency INT NOT NULL,
          UNIQUE (site_id, lemma)
        );
        CREATE INDEX IF NOT EXISTS idx_lemma_lemma ON lemma(lemma);
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS index_entry (
          id BIGSERIAL PRIMARY KEY,
          page_id BIGINT NOT NULL REFERENCES page(id) ON DELETE CASCADE,
          lemma_id BIGINT NOT NULL REFERENCES lemma(id) ON DELETE CASCADE,
          rank REAL NOT NULL,
          UNIQUE (page_id, lemma_id)
        );
        CREATE INDEX IF NOT EXISTS idx_index_entry_lemma ON index_entry(lemma_id);
        """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS index_entry")
    op.execute("DROP TABLE IF EXISTS lemma")
    op.execute("DROP TABLE IF EXISTS page")
    op.execute("DROP TABLE IF EXISTS site")
    op.execute("DROP TYPE IF EXISTS indexing_status")
