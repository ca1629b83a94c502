"""Vector similarity and lexical scoring primitives."""

import math
import re
from typing import Dict, List, Optional, Sequence

import numpy as np

_WORD_CHAR = re.compile(r"\w", re.UNICODE)


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine similarity over the common prefix of two vectors.

    Returns 0.0 when either vector is missing, empty or has zero norm.
    """
    if a is None or b is None:
        return 0.0
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    va = np.asarray(a[:n], dtype=np.float64)
    vb = np.asarray(b[:n], dtype=np.float64)
    na = float(np.dot(va, va))
    nb = float(np.dot(vb, vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (math.sqrt(na) * math.sqrt(nb)))


def _is_cjk(ch: str) -> bool:
    code = ord(ch)
    return (
        0x4E00 <= code <= 0x9FFF      # CJK unified ideographs
        or 0x3400 <= code <= 0x4DBF   # extension A
        or 0x20000 <= code <= 0x2A6DF  # extension B
        or 0xF900 <= code <= 0xFAFF   # compatibility ideographs
        or 0x3000 <= code <= 0x303F   # CJK symbols and punctuation
        or 0x3040 <= code <= 0x30FF   # hiragana, katakana
        or 0xAC00 <= code <= 0xD7AF   # hangul syllables
    )


def tokenize(text: Optional[str]) -> List[str]:
    """Split text into lower-cased word tokens; CJK characters are single tokens."""
    tokens: List[str] = []
    if not text or not text.strip():
        return tokens
    buf: List[str] = []
    for ch in text.lower():
        if _is_cjk(ch):
            if buf:
                tokens.append("".join(buf))
                buf = []
            tokens.append(ch)
        elif _WORD_CHAR.match(ch) and ch != "_":
            buf.append(ch)
        elif buf:
            tokens.append("".join(buf))
            buf = []
    if buf:
        tokens.append("".join(buf))
    return tokens


class BM25Okapi:
    """Okapi BM25 scorer over a pre-tokenized corpus."""

    def __init__(self, corpus: Optional[List[List[str]]], k1: float = 1.5, b: float = 0.75):
        self.k1 = k1
        self.b = b
        self.corpus = corpus or []
        self.doc_freq: Dict[str, int] = {}
        self.term_freqs: List[Dict[str, int]] = []

        total_len = 0
        for doc in self.corpus:
            tf: Dict[str, int] = {}
            for term in doc or []:
                if not term or not term.strip():
                    continue
                tf[term] = tf.get(term, 0) + 1
            total_len += len(doc or [])
            self.term_freqs.append(tf)
            for term in tf:
                self.doc_freq[term] = self.doc_freq.get(term, 0) + 1
        self.avg_doc_len = total_len / len(self.corpus) if self.corpus else 0.0

    def get_scores(self, query_tokens: Optional[List[str]]) -> np.ndarray:
        n_docs = len(self.corpus)
        scores = np.zeros(n_docs, dtype=np.float64)
        if n_docs == 0 or not query_tokens:
            return scores

        for i, doc in enumerate(self.corpus):
            tf = self.term_freqs[i]
            doc_len = len(doc or [])
            norm = (1.0 - self.b) + self.b * (doc_len / self.avg_doc_len if self.avg_doc_len > 0 else 1.0)
            s = 0.0
            for q in query_tokens:
                if not q or not q.strip():
                    continue
                df = self.doc_freq.get(q, 0)
                f = tf.get(q, 0)
                if df == 0 or f == 0:
                    continue
                idf = math.log(1.0 + (n_docs - df + 0.5) / (df + 0.5))
                s += idf * (f * (self.k1 + 1.0)) / (f + self.k1 * norm)
            scores[i] = s
        return scores
