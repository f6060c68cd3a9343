"""
Static tuning data for DemakAI.

Synonyms, stopwords and topic packs drive query expansion; thresholds and
limits drive retrieval; the remaining tables are user-facing constants.
Edit this file to tune behaviour without touching the pipeline code.
"""
import re

# ==================== SYNONYMS (lexical query expansion) ====================
SYNONYMS = {
    # Toko & Retail
    "toko": ["toko", "warung", "kedai", "ritel", "took"],
    "warung": ["warung", "kedai", "toko", "kios"],
    "kedai": ["kedai", "warung", "toko"],
    "ritel": ["ritel", "retail", "eceran"],

    # Usaha & Bisnis
    "usaha": ["usaha", "bisnis", "dagang", "perniagaan"],
    "bisnis": ["bisnis", "usaha", "perniagaan"],
    "jualan": ["jualan", "jual", "dagang", "niaga"],
    "dagang": ["dagang", "jualan", "perdagangan"],

    # Online & Digital
    "online": ["online", "daring", "digital", "internet", "e-commerce"],
    "daring": ["daring", "online", "digital"],
    "digital": ["digital", "online", "daring", "elektronik"],

    # Makanan & Minuman
    "makan": ["makan", "makanan", "kuliner", "restoran", "rumah makan"],
    "makanan": ["makanan", "makan", "kuliner"],
    "minum": ["minum", "minuman", "cafe", "kopi"],
    "minuman": ["minuman", "minum", "beverage"],
    "kopi": ["kopi", "cafe", "coffee", "kedai kopi"],
    "cafe": ["cafe", "kopi", "coffee shop", "kedai kopi"],
    "restoran": ["restoran", "rumah makan", "tempat makan"],

    # Jasa Umum
    "fotokopi": ["fotokopi", "fotocopy", "penggandaan", "cetak", "copy"],
    "cetak": ["cetak", "printing", "percetakan", "print"],
    "laundry": ["laundry", "cuci", "binatu"],
    "salon": ["salon", "pangkas", "cukur", "barbershop"],
    "bengkel": ["bengkel", "reparasi", "service", "servis", "perbaikan"],

    # Pendidikan
    "guru": ["guru", "pengajar", "pendidik", "dosen"],
    "sekolah": ["sekolah", "pendidikan", "edukasi"],
    "madrasah": ["madrasah", "diniyah", "pesantren"],
    "kursus": ["kursus", "pelatihan", "training", "bimbel"],

    # IT & Teknologi
    "programmer": ["programmer", "developer", "software engineer", "coding"],
    "developer": ["developer", "programmer", "software engineer"],
    "it": ["it", "teknologi informasi", "komputer", "teknologi"],
    "komputer": ["komputer", "pc", "laptop", "computer"],
    "software": ["software", "aplikasi", "program"],

    # Industri & Manufaktur
    "konveksi": ["konveksi", "garmen", "jahit", "tekstil"],
    "jahit": ["jahit", "menjahit", "tailor", "konveksi"],
    "pabrik": ["pabrik", "manufaktur", "industri", "factory"],

    # Statistik & Data
    "pdrb": ["pdrb", "produk domestik regional bruto", "pertumbuhan ekonomi"],
    "data": ["data", "statistik", "informasi"],
    "profil": ["profil", "gambaran", "overview"],
    "ketenagakerjaan": ["ketenagakerjaan", "tenaga kerja", "pekerja"],
    "kemiskinan": ["kemiskinan", "garis kemiskinan", "poverty"],
    "inflasi": ["inflasi", "harga", "indeks harga"],
    "demak": ["demak", "kabupaten demak"],
}

# ==================== PUBLICATION TOPIC PACKS (vector expansion) ====================
PUBLICATION_TOPICS = {
    "pdrb": "produk domestik regional bruto ekonomi harga berlaku adhk pengeluaran lapangan usaha kabupaten demak bps",
    "kemiskinan": "penduduk miskin tingkat kemiskinan garis kemiskinan gk tkem demak bps",
    "inflasi": "inflasi indeks harga konsumen ihk perubahan harga konsumsi demak bps",
    "tenaga": "ketenagakerjaan angkatan kerja tingkat partisipasi kerja tpak pengangguran demak bps",
    "pendidikan": "pendidikan angka partisipasi sekolah aps lama sekolah apsr apk apm demak bps",
    "kesehatan": "kesehatan stunting sanitasi gizi angka harapan hidup ahh demak bps",
    "pertanian": "pertanian tanaman pangan hortikultura perkebunan peternakan produksi demak bps",
    "perdagangan": "perdagangan ekspor impor neraca perdagangan harga produsen demak bps",
    "pariwisata": "pariwisata kunjungan wisatawan hunian hotel amenitas demak bps",
}

# Appended to every publication query so very short queries keep a domain anchor.
PUBLICATION_ANCHOR = "kabupaten demak bps publikasi statistik data"

# Appended when fewer than MIN_VECTOR_KEYWORDS keywords survive filtering.
PUBLICATION_BOOSTER = "tren indikator definisi metodologi seri waktu"
MIN_VECTOR_KEYWORDS = 4

# ==================== STOPWORDS (Indonesian) ====================
STOPWORDS = frozenset([
    # Kata hubung
    "yang", "dan", "di", "ke", "dari", "untuk", "dengan", "pada",
    # Kata tanya
    "apa", "bagaimana", "kenapa", "mengapa", "dimana", "kapan",
    # Kata ganti
    "saya", "aku", "kamu", "anda", "dia", "mereka", "kita", "ini", "itu", "tersebut",
    # Kata kerja umum
    "adalah", "ada", "mau", "ingin", "bisa", "akan", "sudah", "buka", "kerja", "sebagai", "jadi",
    # Imbuhan
    "nya", "lah", "kah",
    # Konjungsi
    "atau", "tapi", "tetapi", "jika", "kalau", "namun",
])

MAX_KEYWORDS = 5
MIN_KEYWORD_LENGTH = 3

# ==================== SIMILARITY THRESHOLDS ====================
PUBLICATION_THRESHOLD = 0.1
# Only consulted when PUBLICATION_THRESHOLD is configured above RELAXED_THRESHOLD_GUARD.
RELAXED_THRESHOLD_GUARD = 0.2
RELAXED_PUBLICATION_THRESHOLD = 0.25

# ==================== RESULT LIMITS ====================
TEXT_SEARCH_LIMIT = 20      # rows fetched from each classification table
TOP_KBLI = 5                # kept after ranking
TOP_KBJI = 5
TOP_PUBLICATION_CHUNKS = 10
DESCRIPTION_MAX_CHARS = 200

# Rendering limits shared by prompts and fallback answers
PROMPT_MAX_PER_KIND = 3
PROMPT_MAX_PUBLICATIONS = 5
FALLBACK_DESCRIPTION_CHARS = 180
CATALOG_MAX_TAGS = 2

# ==================== MODE INDICATORS ====================
MODE_INDICATORS = {
    "natural": "💬",
    "kbli_kbji": "📋",
    "publikasi": "📚",
}

# ==================== LISTING INTENT ====================
LISTING_KEYWORDS = [
    "apa saja",
    "daftar",
    "list",
    "semua publikasi",
    "ada apa",
    "tersedia",
    "tersedia apa",
    "punya apa",
    "katalog",
    "koleksi",
]

# ==================== GREETING PATTERNS ====================
GREETING_PATTERNS = [
    re.compile(r"^(hai|halo|hi|hello|hey|p|assalamualaikum|salam)", re.IGNORECASE),
    re.compile(r"^(selamat (pagi|siang|sore|malam))", re.IGNORECASE),
    re.compile(r"^(good (morning|afternoon|evening))", re.IGNORECASE),
]

# ==================== BOT BLACKLIST ====================
# WhatsApp ids of other bots whose messages must be ignored.
BOT_BLACKLIST = frozenset([
    # "6281234567890@s.whatsapp.net",
])

# ==================== LLM ====================
LLM_TEMPERATURE = 0.7
LLM_TOP_P = 0.9
LLM_MAX_TOKENS = 320
CONTEXT_WINDOW = 5   # history turns sent with each prompt
HISTORY_MAX = 10     # history turns kept per session

# ==================== EMBEDDING CACHE ====================
CACHE_MAX_SIZE = 1000
CACHE_TTL_SECONDS = 24 * 60 * 60
EMBEDDING_MAX_CHARS = 2000
