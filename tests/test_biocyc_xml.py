import pytest

from genehub.clients.biocyc_xml import PtoolsXmlParser

PATHWAYS_XML = """<?xml version="1.0"?>
<ptools-xml ptools-version="27.0">
  <Pathway ID="ECOLI:PWY-7184" orgid="ECOLI" frameid="PWY-7184">
    <common-name datatype="string">pyrimidine deoxyribonucleotides de novo biosynthesis I</common-name>
  </Pathway>
  <Pathway orgid='ECOLI' frameid='GLYCOLYSIS'>
    <parent><Pathway resource="getxml?ECOLI:Energy-Metabolism" orgid="ECOLI" frameid="Energy-Metabolism"/></parent>
  </Pathway>
</ptools-xml>
"""

REGULATORS_XML = """<ptools-xml>
  <Gene ID="ECOLI:EG10235" orgid="ECOLI" frameid="EG10235">
    <common-name datatype="string">dnaA</common-name>
  </Gene>
  <Gene ID="ECOLI:EG10000" orgid="ECOLI" frameid="EG10000">
    <accession-1>b9999</accession-1>
  </Gene>
</ptools-xml>
"""

REGULATED_XML = """<ptools-xml>
  <Gene resource="getxml?ECOLI:EG10611" orgid="ECOLI" frameid="EG10611"/>
  <Gene resource="getxml?ECOLI:EG10245" orgid="ECOLI" frameid="EG10245"/>
</ptools-xml>
"""

TU_XML = """<ptools-xml>
  <Transcription-Unit ID="ECOLI:TU0-13470" orgid="ECOLI" frameid="TU0-13470">
    <common-name>dnaA-dnaN</common-name>
  </Transcription-Unit>
</ptools-xml>
"""


class TestPtoolsXmlParser:
    @pytest.fixture
    def parser(self):
        return PtoolsXmlParser()

    def test_pathways_with_names(self, parser):
        pathways = parser.pathways(PATHWAYS_XML)
        assert pathways[0] == {"id": "PWY-7184", "name": "pyrimidine deoxyribonucleotides de novo biosynthesis I"}
        assert pathways[1]["id"] == "GLYCOLYSIS"

    def test_pathway_without_name_falls_back_to_id(self, parser):
        xml = '<Pathway frameid="PWY-6125"></Pathway>'
        assert parser.pathways(xml) == [{"id": "PWY-6125", "name": "PWY 6125"}]

    def test_self_closing_pathways(self, parser):
        xml = '<ptools-xml><Pathway frameid="PWY-1"/><Pathway frameid="PWY-2"/></ptools-xml>'
        assert [p["id"] for p in parser.pathways(xml)] == ["PWY-1", "PWY-2"]

    def test_regulators_need_a_common_name(self, parser):
        assert parser.regulators(REGULATORS_XML) == [{"gene": "EG10235", "name": "dnaA", "type": "unknown"}]

    def test_regulated_gene_ids(self, parser):
        assert parser.gene_ids(REGULATED_XML) == ["EG10611", "EG10245"]

    def test_transcription_units(self, parser):
        assert parser.transcription_units(TU_XML) == [{"id": "TU0-13470", "terminators": [], "genes": []}]

    @pytest.mark.parametrize("xml", [None, "", "not xml at all", "<ptools-xml><Pathway frameid=", "<<<>>>"])
    def test_garbage_yields_empty_lists(self, parser, xml):
        assert parser.pathways(xml) == []
        assert parser.regulators(xml) == []
        assert parser.gene_ids(xml) == []
        assert parser.transcription_units(xml) == []
