"""
Prompt texts and prompt builders for DemakAI.

All user-facing model instructions are Indonesian. The code-lookup and
publication prompts ask for a closed answer: the model must never end with
a question back to the user.
"""
from typing import List

from .. import lexicon
from ..models.records import EntryKind, Mode, SearchCandidate

CODE_LOOKUP_SYSTEM_PROMPT = """Kamu asisten yang membantu mencari kode KBLI dan KBJI.

KBLI = Klasifikasi Baku Lapangan Usaha Indonesia (5 digit) - untuk usaha/kegiatan
KBJI = Klasifikasi Baku Jabatan Indonesia (4 digit) - untuk pekerjaan/okupasi

Tugas kamu:
- Evaluasi hasil pencarian KBLI/KBJI yang diberikan.
- Jika ada yang kurang tepat, koreksi dan perbaiki deskripsinya.
- Jika ada kekurangan, tambahkan konteks singkat yang relevan.
- Jangan pernah mengarang kode yang tidak ada di hasil pencarian.
- Jawaban harus **tertutup**, ringkas, tidak perlu menanyakan ulang.
- Format tetap seperti ini:

Berikut kemungkinan yang paling relevan:

KBLI (usaha/kegiatan):
1. [kode] Nama
   Deskripsi singkat

KBJI (pekerjaan/okupasi):
1. [kode] Nama
   Deskripsi singkat

Singkat, jelas, to the point. Maksimal 3 KBLI dan 3 KBJI dan **jangan bertanya balik kepada pengguna.**"""

PUBLICATION_SYSTEM_PROMPT = """Kamu asisten yang membantu menjelaskan data dan publikasi statistik.
Jawab SELALU dalam bahasa Indonesia, ringkas, dan tertutup.

Tugas kamu:
- Evaluasi semua daftar publikasi dan chunk yang diberikan.
- Koreksi, tambahkan penjelasan, atau lengkapi informasi agar bermanfaat.

Jika tidak ada dokumen relevan, BERIKAN penjelasan konsep umum yang akurat
(asal-usul istilah, definisi, contoh), jangan meminta pengguna mengulang.
Jangan mengarang angka statistik. Sebutkan sumber jika bisa (tanpa link pun tidak apa-apa)."""

NATURAL_SYSTEM_PROMPT = """Kamu adalah DemakAI 🤖, asisten AI dari Badan Pusat Statistik (BPS) Kabupaten Demak.

Tugasmu:
• Menjawab pertanyaan pengguna dengan ramah dan jelas, terutama yang berkaitan dengan klasifikasi usaha (KBLI), jabatan (KBJI) dan publikasi.
• Menjelaskan konsep data, statistik, dan ekonomi daerah secara singkat.
• Tidak mengarang data. Jika topiknya bukan statistik, jawab natural seperti teman.

Gunakan bahasa Indonesia yang santai tapi profesional, seolah kamu petugas BPS yang membantu masyarakat memahami data."""

DEFAULT_SYSTEM_PROMPT = "Kamu asisten AI yang ramah dan membantu."

WELCOME_MESSAGE = """Selamat datang di DemakAI!

Saya bisa membantu kamu mencari:
• Kode KBLI (klasifikasi usaha/kegiatan)
• Kode KBJI (klasifikasi pekerjaan/jabatan)
• Data dan publikasi statistik

Cara pakai:
#kbli [pertanyaan] - Cari kode usaha
#kbji [pertanyaan] - Cari kode pekerjaan
#publikasi [pertanyaan] - Cari data/publikasi

Contoh:
- #kbli Saya mau buka usaha fotokopi
- #kbji kerja sebagai guru madrasah diniyah
- #publikasi data kemiskinan 2023

Fitur lain:
/home - Mode percakapan natural
/help - Panduan lengkap
/stats - Lihat statistik

Silakan tanya apa saja!"""


def build_system_prompt(mode: Mode) -> str:
    if mode is Mode.CODE_LOOKUP:
        return CODE_LOOKUP_SYSTEM_PROMPT
    if mode is Mode.PUBLICATION:
        return PUBLICATION_SYSTEM_PROMPT
    return DEFAULT_SYSTEM_PROMPT


def _code_section(candidates: List[SearchCandidate], kind: EntryKind) -> str:
    entries = [c for c in candidates if c.kind is kind][:lexicon.PROMPT_MAX_PER_KIND]
    if not entries:
        return ""
    lines = [f"{kind.value} yang relevan:"]
    for i, c in enumerate(entries, 1):
        lines.append(f"{i}. [{c.code}] {c.title}\n   {c.description}\n")
    return "\n".join(lines) + "\n"


def build_user_prompt(query: str, candidates: List[SearchCandidate], mode: Mode) -> str:
    """Renders the retrieved candidates under the user's question."""
    if not candidates:
        if mode is Mode.PUBLICATION:
            return (
                f"Pertanyaan: {query}\n\n"
                "Tidak ada publikasi yang cocok di basis data. Berikan penjelasan umum yang akurat "
                "tentang topik tersebut tanpa mengarang angka, dan jangan meminta pengguna mengulang."
            )
        return (
            f"Pertanyaan: {query}\n\n"
            "Tidak ada kode KBLI/KBJI yang ditemukan. Beritahu pengguna dengan ramah bahwa kode "
            "tidak ditemukan, jangan mengarang kode, dan sarankan mencoba kata kunci lain."
        )

    if mode is Mode.CODE_LOOKUP:
        context = _code_section(candidates, EntryKind.BUSINESS) + _code_section(candidates, EntryKind.OCCUPATION)
        return (
            f"Pertanyaan: {query}\n\n"
            f"Data hasil pencarian:\n{context}\n"
            "Tolong berikan jawaban yang sudah diperbaiki dan disempurnakan.\n"
            "Gunakan format seperti contoh dan **jangan bertanya balik**."
        )

    if mode is Mode.PUBLICATION:
        context = "\n\n".join(
            f"{i}. {c.title} ({c.year})\n   {c.description}"
            for i, c in enumerate(candidates[:lexicon.PROMPT_MAX_PUBLICATIONS], 1)
        )
        return (
            f"Pertanyaan: {query}\n\n"
            f"Daftar publikasi hasil pencarian:\n{context}\n\n"
            "Jelaskan secara singkat dan korektif, tambahkan konteks yang relevan bila perlu.\n"
            "Jawaban harus **tertutup**, langsung, dan tidak memancing percakapan baru."
        )

    return query
