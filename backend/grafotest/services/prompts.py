"""
Grafotest API — Prompt Templates
=================================

What:  Builds the instruction text sent to Gemini alongside the image.
How:   Plain string templates. The JSON shape written into each prompt must
       stay in sync with the report models in schemas/analysis.py.
"""


def language_instruction(language: str) -> str:
    """Anything other than 'en' selects Indonesian."""
    if language == "en":
        return "Use English."
    return "Gunakan Bahasa Indonesia."


def build_analysis_prompt(language: str) -> str:
    return f"""
{language_instruction(language)}

Anda adalah analis grafologi profesional.

TUGAS:
Analisis tulisan tangan berdasarkan prinsip grafologi.

WAJIB keluarkan JSON VALID dengan struktur:
{{
  "personalitySummary": string,
  "traits": [
    {{
      "feature": string,
      "observation": string,
      "interpretation": string,
      "confidence": number
    }}
  ],
  "strengths": string[],
  "weaknesses": string[],
  "graphologyBasis": string[]
}}

ATURAN:
- JANGAN menulis teks di luar JSON
- Semua array minimal 3 item
- confidence antara 0.4 – 0.9
"""


def build_contextual_prompt(context: str, language: str) -> str:
    return f"""
{language_instruction(language)}

KONTEKS:
"{context}"

TUGAS:
Nilai kecocokan karakter tulisan tangan dengan konteks.

FORMAT JSON:
{{
  "suitabilityScore": number,
  "relevanceExplanation": string,
  "actionableAdvice": string[],
  "specificRisks": string[]
}}

ATURAN:
- Tidak ada teks di luar JSON
- Semua array minimal 2 item
"""
