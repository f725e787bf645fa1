"""Business domain profile used by every AI prompt.

Single source of truth for the company's lines of business, the global and
out-of-profile exclusion vocabularies and the known procurement modalities:
- relevance_classifier.py (inclusion/exclusion rules)
- filter_extractor.py (keyword mapping, smart blacklist)
- record_analyzer.py (relevance tier criteria)
"""

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class BusinessArea:
    """One line of business with its search vocabulary."""

    name: str
    key_terms: List[str]
    synonyms: List[str] = field(default_factory=list)

    @property
    def vocabulary(self) -> List[str]:
        """All terms of the area (key terms first)."""
        return [*self.key_terms, *self.synonyms]


BUSINESS_AREAS: List[BusinessArea] = [
    BusinessArea(
        "Alimentação Prisional",
        ["alimentação prisional", "refeições para presídios",
         "fornecimento de alimentação para unidades prisionais", "nutrição prisional"],
        ["alimentação para detentos", "gestão de refeitório prisional",
         "kit lanche para sistema prisional", "refeições transportadas para presídios"],
    ),
    BusinessArea(
        "Alimentação Hospitalar",
        ["alimentação hospitalar", "refeições para hospitais",
         "serviços de nutrição hospitalar", "dieta hospitalar"],
        ["gestão de refeitório hospitalar", "nutrição clínica", "alimentação enteral",
         "fornecimento de dietas para pacientes"],
    ),
    BusinessArea(
        "Merenda ou Alimentação Escolar",
        ["merenda escolar", "alimentação escolar", "refeições para escolas", "pnae",
         "programa nacional de alimentação escolar"],
        ["fornecimento de merenda", "gestão de cantina escolar", "refeitório escolar",
         "kit merenda"],
    ),
    BusinessArea(
        "Frota com Motorista",
        ["locação de frota com motorista", "aluguel de veículos com condutor",
         "transporte executivo", "terceirização de frota"],
        ["serviços de motorista", "transporte de passageiros",
         "veículos com motorista à disposição", "fretamento de veículos"],
    ),
    BusinessArea(
        "Cogestão Prisional",
        ["cogestão prisional", "gestão compartilhada de unidade prisional",
         "administração prisional"],
        ["parceria na gestão de presídios", "gestão de estabelecimentos penais",
         "apoio à gestão prisional"],
    ),
    BusinessArea(
        "Fornecimento de Mão de Obra (Facilities)",
        ["fornecimento de mão de obra", "terceirização de serviços",
         "mão de obra dedicada", "postos de trabalho"],
        ["facilities", "apoio administrativo", "recepcionista", "porteiro",
         "copeiragem", "serviços gerais"],
    ),
    BusinessArea(
        "Limpeza (Predial, Escolar e Hospitalar)",
        ["limpeza predial", "limpeza escolar", "limpeza hospitalar", "limpeza"],
        ["limpeza e conservação", "higienização", "serviços de limpeza",
         "higienização hospitalar", "limpeza terminal", "assepsia de ambientes",
         "gestão de resíduos de saúde"],
    ),
    BusinessArea(
        "PPP e Concessões",
        ["ppp", "parceria público-privada", "concessão administrativa",
         "concessão patrocinada", "ppi", "pmi"],
        ["edital de manifestação de interesse", "procedimento de manifestação de interesse"],
    ),
    BusinessArea(
        "Engenharia (Construção, Reforma, Manutenção)",
        ["engenharia", "construção civil", "reforma predial", "manutenção predial", "obras"],
        ["serviços de engenharia", "edificações", "infraestrutura predial",
         "manutenção preventiva", "manutenção corretiva"],
    ),
]

# Always excluded, whatever the user asks for
GLOBAL_BLACKLIST: List[str] = [
    "teste", "simulação", "cancelado", "leilão", "dedetização", "controle de pragas",
    "poços artesianos", "desratização", "pombo", "ratos", "controle de pragas urbanas",
    "descupinização", "banheiro químico", "desentupimento de canos e ralos", "buffet",
    "organização de espaços", "salgados fritos e assados", "bolos", "brinquedos",
    "infláveis", "pula pula", "máquina algodão doce", "pipoca", "sessão solene",
    "homenagem", "fornecimento de pão", "confeitaria", "padaria", "doces",
    "ocupação de espaço físico", "picolé", "algodão doce", "coquetel", "panificação",
    "ações institucionais", "reuniões", "eventos", "biscoitos", "praça de alimentação",
    "agricultores familiares", "festa", "hotelaria", "feiras livres", "camarim",
    "sem motorista", "sem condutor", "ônibus e micro-ônibus", "caminhão",
    "veículos pesados", "audiovisual", "locução", "panfletos", "produção de cards",
    "outdoor", "cartazes", "vagas de estágio remunerado", "curso", "armamento",
    "pistolas", "musica", "multi-instrumentista", "leilões", "alienação de bens",
    "leiloeiros", "lavagem automotiva", "samba", "pagode", "rock", "sertanejo",
    "teatro", "móveis", "imóveis", "ginástica", "musculação", "dança", "imprensa",
    "segurança privada", "desfile", "albergagem", "veterinária", "usina", "professor",
    "recreativos", "arbitragem", "cerimonialista", "campeonatos", "recapeamento",
    "decoração natalina", "pavimentação",
]

# Purchases the company never bids on; the smart blacklist of a generic
# question (no specific business area)
OUT_OF_PROFILE_TERMS: List[str] = [
    "medicamentos", "material hospitalar", "equipamentos hospitalares",
    "material de expediente", "material escolar", "material esportivo", "uniformes",
    "combustíveis", "peças automotivas", "pneus", "aquisição de veículos",
    "equipamentos de informática", "licenças de software", "mobiliário",
    "material de construção", "gêneros alimentícios", "iluminação pública",
]

KNOWN_MODALITIES: List[str] = [
    "Pregão Eletrônico",
    "Pregão Presencial",
    "Concorrência",
    "Tomada de Preços",
    "Convite",
    "Leilão",
    "Concurso",
    "Dispensa",
    "Inexigibilidade",
]


def format_business_areas() -> str:
    """Render the business areas as a numbered prompt block."""
    lines = []
    for i, area in enumerate(BUSINESS_AREAS, start=1):
        lines.append(f"{i}. **{area.name}**")
        lines.append("   * Termos-chave: " + ", ".join(f'"{t}"' for t in area.key_terms))
        if area.synonyms:
            lines.append("   * Sinônimos: " + ", ".join(f'"{t}"' for t in area.synonyms))
    return "\n".join(lines)


def format_global_blacklist() -> str:
    """Render the global exclusions as a prompt bullet list."""
    return "\n".join(f'- "{term}"' for term in GLOBAL_BLACKLIST)


def format_out_of_profile_terms() -> str:
    """Render the out-of-profile vocabulary as a prompt bullet list."""
    return "\n".join(f'- "{term}"' for term in OUT_OF_PROFILE_TERMS)
