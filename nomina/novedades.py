"""Novelty (novedad) vocabulary shared by the service and the editing client."""

from __future__ import annotations

import enum


class NovedadType(str, enum.Enum):
    HORAS_EXTRA = "horas_extra"
    RECARGO_NOCTURNO = "recargo_nocturno"
    VACACIONES = "vacaciones"
    LICENCIA_REMUNERADA = "licencia_remunerada"
    INCAPACIDAD = "incapacidad"
    BONIFICACION = "bonificacion"
    COMISION = "comision"
    PRIMA = "prima"
    OTROS_INGRESOS = "otros_ingresos"
    SALUD = "salud"
    PENSION = "pension"
    FONDO_SOLIDARIDAD = "fondo_solidaridad"
    RETENCION_FUENTE = "retencion_fuente"
    LIBRANZA = "libranza"
    AUSENCIA = "ausencia"
    MULTA = "multa"
    DESCUENTO_VOLUNTARIO = "descuento_voluntario"
    LICENCIA_NO_REMUNERADA = "licencia_no_remunerada"


DEDUCTION_NOVEDAD_TYPES = frozenset(
    {
        NovedadType.SALUD,
        NovedadType.PENSION,
        NovedadType.FONDO_SOLIDARIDAD,
        NovedadType.RETENCION_FUENTE,
        NovedadType.LIBRANZA,
        NovedadType.MULTA,
        NovedadType.DESCUENTO_VOLUNTARIO,
    }
)


def is_deduction(tipo_novedad: NovedadType | str) -> bool:
    return NovedadType(tipo_novedad) in DEDUCTION_NOVEDAD_TYPES
