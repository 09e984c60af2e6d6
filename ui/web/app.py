import sys
import gzip
from pathlib import Path

import streamlit as st

# Make project root importable (so biotag/ and api/ work)
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from biotag import abbreviation, parentheses
from biotag.codec import EncodingScheme
from biotag.config import load_config
from biotag.corpus_io import char_offset_lines, read_corpus, token_tag_lines
from biotag.errors import BiotagError
from biotag.models import Corpus, EntityType
from biotag.pipeline import Pipeline, build_corpus, build_matchers, build_parser


def load_uploaded_corpus(data: bytes, name: str, scheme: EncodingScheme, entity: EntityType) -> Corpus:
    """Read a record file, gzip-compressed or plain."""
    if name.endswith(".gz"):
        data = gzip.decompress(data)
    text = data.decode("utf-8", errors="ignore")
    return read_corpus(text.splitlines(), scheme, entity, source=name)


def annotation_rows(corpus: Corpus):
    rows = []
    for s in corpus:
        for a in s.sorted_annotations():
            rows.append(
                {
                    "sentence": s.id,
                    "tokens": f"{a.start}-{a.end}",
                    "chars": f"{a.char_start}-{a.char_end}",
                    "text": a.text,
                    "score": round(a.score, 3),
                }
            )
    return rows


st.set_page_config(
    page_title="biotag – corpus viewer",
    layout="wide",
)

st.title("🧬 biotag – entity annotation viewer")
st.caption("Tag decoding • Model combination • Boundary correction")

# --------------------------------------------------------------------
# Sidebar configuration
# --------------------------------------------------------------------
st.sidebar.header("Settings")

scheme = st.sidebar.selectbox(
    "Encoding scheme",
    options=[s.value for s in EncodingScheme],
    index=1,
)
entity = st.sidebar.selectbox(
    "Entity type",
    options=[e.value for e in EntityType],
    index=0,
)
paren_mode = st.sidebar.selectbox(
    "Parentheses",
    options=["correct", "remove", "off"],
    index=0,
    help=(
        "correct: extend or shrink unbalanced annotations\n"
        "remove: drop unbalanced annotations\n"
        "off: leave them"
    ),
)
use_abbrev = st.sidebar.checkbox("Abbreviation pairs", value=True)

st.sidebar.markdown("---")

operation_mode = st.sidebar.radio(
    "Input",
    options=["Corpus record file", "Raw text"],
    index=0,
    help="Corpus record: an annotated .gz record file.\nRaw text: one sentence per line, annotated with the configured pipeline.",
)

corpus = None

# --------------------------------------------------------------------
# CORPUS RECORD MODE
# --------------------------------------------------------------------
if operation_mode == "Corpus record file":
    uploaded = st.file_uploader(
        "Upload a corpus record (.gz or plain text)",
        type=["gz", "txt"],
    )
    if uploaded is not None:
        try:
            corpus = load_uploaded_corpus(
                uploaded.read(),
                uploaded.name,
                EncodingScheme.parse(scheme),
                EntityType.parse(entity),
            )
        except BiotagError as e:
            st.error(f"Failed to load corpus: {e}")
    else:
        st.info("Upload a corpus record file to get started.")

# --------------------------------------------------------------------
# RAW TEXT MODE
# --------------------------------------------------------------------
else:
    config_path = st.sidebar.text_input(
        "Pipeline config",
        value="configs/pipeline.yaml",
    )
    user_text = st.text_area(
        "Sentences (one per line)",
        value="Interleukin 2 ( IL2 ) activates BRCA1 expression .",
        height=200,
    )
    if st.button("🔧 Annotate", type="primary"):
        try:
            config = load_config(config_path)
            parser = build_parser(config.parser)
            with parser:
                corpus = build_corpus(
                    [line for line in user_text.splitlines() if line.strip()],
                    parser,
                    build_matchers(config.lexicons),
                    EncodingScheme.parse(scheme),
                    EntityType.parse(entity),
                )
            config.parentheses = "off"
            config.abbreviations = False
            Pipeline(config).run(corpus)
        except (BiotagError, OSError) as e:
            st.error(f"Pipeline failed: {e}")
            corpus = None

if corpus is not None:
    before = corpus.annotation_count()

    if paren_mode == "correct":
        report = parentheses.process_correcting(corpus)
        st.sidebar.write(f"Parentheses: {report.corrected} corrected, {report.removed} removed")
    elif paren_mode == "remove":
        report = parentheses.process_removing(corpus)
        st.sidebar.write(f"Parentheses: {report.removed} removed")

    if use_abbrev:
        changes = abbreviation.process(corpus)
        st.sidebar.write(f"Abbreviations: {changes} added or replaced")

    st.success(
        f"{len(corpus)} sentences, {before} annotations before correction, "
        f"{corpus.annotation_count()} after."
    )

    rows = annotation_rows(corpus)
    if rows:
        st.markdown("### Annotations")
        st.dataframe(rows, use_container_width=True)

    col_bc, col_tags = st.columns(2)
    with col_bc:
        st.download_button(
            label="⬇️ Character offsets",
            data="\n".join(char_offset_lines(corpus)) + "\n",
            file_name="annotations.txt",
            mime="text/plain",
        )
    with col_tags:
        st.download_button(
            label="⬇️ Token tags",
            data="\n".join(token_tag_lines(corpus)) + "\n",
            file_name="annotations.tags",
            mime="text/plain",
        )
